from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CreateLinkRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source: str = Field(min_length=1, max_length=4096)
    dest: str = Field(min_length=1, max_length=4096)


class LinkTreeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source: str = Field(min_length=1, max_length=4096)
    dest_root: str = Field(min_length=1, max_length=4096)


class RemoveLinkRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str = Field(min_length=1, max_length=4096)


class CreateLinkResponse(BaseModel):
    ok: bool


class LinkTreeResponse(BaseModel):
    ok: bool
    created: int
    skipped: int
    errors: list[str]


class RemoveLinkResponse(BaseModel):
    ok: bool
    path: str
    is_dir: bool
    remaining_links: int


class LinkDetailsResponse(BaseModel):
    path: str
    size: int
    inode: int
    device: int
    nlink: int
    linked_paths: list[str]
