"""Normalized Instagram data returned by the scraper."""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

Timestamp = Union[str, int, float, None]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class CommentInfo(_CamelModel):
    id: str
    username: str
    text: str
    timestamp: Timestamp = None
    like_count: Optional[int] = None
    replies: Optional[List["CommentInfo"]] = None


class PostInfo(_CamelModel):
    id: str
    url: str
    caption: Optional[str] = None
    timestamp: Timestamp = None
    like_count: Optional[int] = None
    comment_count: Optional[int] = None
    image_url: Optional[str] = None
    shortcode: Optional[str] = None
    comments: Optional[List[CommentInfo]] = None


class ProfileInfo(_CamelModel):
    username: str
    full_name: Optional[str] = None
    bio: Optional[str] = None
    followers: Optional[int] = None
    following: Optional[int] = None
    post_count: Optional[int] = None
    profile_url: str
    profile_pic_url: Optional[str] = None


class ScrapedProfileResult(_CamelModel):
    profile: ProfileInfo
    posts: List[PostInfo] = []


class ScrapedCommentsResult(_CamelModel):
    post_url: str
    post: Optional[PostInfo] = None
    comments: List[CommentInfo] = []


class ScrapeResult(_CamelModel):
    type: Literal["profile", "post"]
    profile: Optional[ScrapedProfileResult] = None
    post: Optional[ScrapedCommentsResult] = None
