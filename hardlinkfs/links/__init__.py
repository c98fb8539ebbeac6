from hardlinkfs.links.service import (
    LinkConflictError,
    LinkDetails,
    LinkNotFoundError,
    LinkPolicyError,
    LinkService,
    LinkTargetError,
    LinkTreeResult,
    RemoveLinkResult,
    link_details_to_dict,
)

__all__ = [
    "LinkConflictError",
    "LinkDetails",
    "LinkNotFoundError",
    "LinkPolicyError",
    "LinkService",
    "LinkTargetError",
    "LinkTreeResult",
    "RemoveLinkResult",
    "link_details_to_dict",
]
