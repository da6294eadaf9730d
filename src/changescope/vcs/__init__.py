"""Version-control access: the gateway, diff parsing and merge request collaborators."""

from .gateway import VcsGateway, GitRepositoryGateway
from .merge_requests import MrMetadata, MrResolver, StaticMrResolver, TimeoutMrResolver

__all__ = [
    "VcsGateway", "GitRepositoryGateway",
    "MrMetadata", "MrResolver", "StaticMrResolver", "TimeoutMrResolver",
]
