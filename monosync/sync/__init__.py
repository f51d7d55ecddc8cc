"""Import and land operations between a hub repo and its mapped repos.

- Config: the hub's directory -> repo mapping, read at a revision
- Patch: changesets and path translation between directory scopes
- Authorship: squash author and co-author trailers
- Import/Land engines, serialized per hub by the operation queue
"""

from monosync.sync.hub import Hub
from monosync.sync.importer import ImportRequest
from monosync.sync.lander import LandedCommit, LandRequest

__all__ = [
    "Hub",
    "ImportRequest",
    "LandRequest",
    "LandedCommit",
]
