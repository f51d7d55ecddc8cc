"""monosync — keep subdirectories of a hub repo in sync with external repos.

Changes authored in an external repo are *imported* into a new branch of the
hub; changes authored in the hub are *landed* on the hub's default branch and
on every external repo mapped to the changed paths.
"""

__version__ = "0.2.0"
