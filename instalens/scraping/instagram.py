"""Instagram scraping through Apify actors.

Only public data should be analysed; users are responsible for complying
with Instagram's Terms of Use.

Actor output is loosely shaped (camelCase, snake_case and legacy keys all
appear), so every field is read through a list of candidate keys.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from instalens.config import settings
from instalens.scraping.apify_client import ApifyClient, ApifyError
from instalens.scraping.models import (
    CommentInfo,
    PostInfo,
    ProfileInfo,
    ScrapedCommentsResult,
    ScrapedProfileResult,
    ScrapeResult,
)
from instalens.scraping.urls import InvalidInstagramUrl, extract_username

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, Optional[int]], Awaitable[None]]

MAX_CONCURRENT_COMMENT_FETCHES = 3


class ScrapeError(Exception):
    """The scraping provider failed or returned nothing usable."""


def _text(item: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = item.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _count(item: Dict[str, Any], *keys: str) -> Optional[int]:
    for key in keys:
        value = item.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return int(value)
    return None


def _timestamp(item: Dict[str, Any], *keys: str):
    for key in keys:
        value = item.get(key)
        if isinstance(value, (str, int, float)) and not isinstance(value, bool) and value != "":
            return value
    return None


def parse_comment(item: Dict[str, Any], with_replies: bool = True) -> CommentInfo:
    username = _text(item, "ownerUsername", "username") or "unknown"
    timestamp = _timestamp(item, "timestamp", "createdAt")
    replies = None
    if with_replies and isinstance(item.get("replies"), list):
        replies = [parse_comment(r, with_replies=False) for r in item["replies"] if isinstance(r, dict)]
    return CommentInfo(
        id=str(item.get("id") or f"{username}-{timestamp or 'unknown'}"),
        username=username,
        text=_text(item, "text", "commentText", "comment") or "",
        timestamp=timestamp,
        like_count=_count(item, "likesCount", "likes_count", "likes"),
        replies=replies or None,
    )


def parse_post(item: Dict[str, Any], index: int = 0) -> PostInfo:
    shortcode = _text(item, "shortCode", "shortcode")
    url = _text(item, "url", "postUrl", "post_url")
    if not url and shortcode:
        url = f"https://www.instagram.com/p/{shortcode}/"

    comments = None
    if isinstance(item.get("latestComments"), list):
        comments = [parse_comment(c) for c in item["latestComments"] if isinstance(c, dict)]

    return PostInfo(
        id=str(item.get("id") or shortcode or item.get("postId") or f"post-{index}"),
        url=url or "",
        caption=_text(item, "caption", "text", "postText") or "",
        timestamp=_timestamp(item, "timestamp", "takenAtTimestamp", "taken_at_timestamp", "createdAt", "takenAt"),
        like_count=_count(item, "likesCount", "likes_count", "likes", "likeCount"),
        comment_count=_count(item, "commentsCount", "comments_count", "comments", "commentCount"),
        image_url=_text(item, "displayUrl", "imageUrl", "image_url", "display_url", "thumbnailUrl"),
        shortcode=shortcode,
        comments=comments or None,
    )


def _is_profile_item(item: Dict[str, Any]) -> bool:
    if item.get("type") == "Profile":
        return True
    return bool(item.get("username")) and not (
        item.get("shortCode") or item.get("shortcode") or item.get("postUrl")
    )


def _is_post_item(item: Dict[str, Any]) -> bool:
    if item.get("type") in ("Post", "Image", "Video", "Sidecar"):
        return True
    if item.get("shortCode") or item.get("shortcode") or item.get("postUrl") or item.get("post_url"):
        return True
    url = item.get("url")
    return isinstance(url, str) and ("/p/" in url or "/reel/" in url)


def parse_profile_items(
    items: List[Dict[str, Any]], username: str, posts_limit: int
) -> ScrapedProfileResult:
    profile_item = next((i for i in items if _is_profile_item(i)), items[0])
    profile_username = _text(profile_item, "username") or username

    profile = ProfileInfo(
        username=profile_username,
        full_name=_text(profile_item, "fullName", "full_name"),
        bio=_text(profile_item, "biography", "bio"),
        followers=_count(profile_item, "followersCount", "followers_count", "followers"),
        following=_count(profile_item, "followsCount", "follows_count", "following"),
        post_count=_count(profile_item, "postsCount", "posts_count", "posts"),
        profile_url=f"https://www.instagram.com/{profile_username}/",
        profile_pic_url=_text(
            profile_item, "profilePicUrl", "profilePicUrlHD", "profile_pic_url", "profile_pic_url_hd"
        ),
    )

    if isinstance(profile_item.get("latestPosts"), list):
        posts_data = profile_item["latestPosts"]
    elif isinstance(profile_item.get("posts"), list):
        posts_data = profile_item["posts"]
    else:
        posts_data = [i for i in items if i is not profile_item and _is_post_item(i)]

    posts = [
        parse_post(item, index)
        for index, item in enumerate(posts_data[:posts_limit])
        if isinstance(item, dict)
    ]
    return ScrapedProfileResult(profile=profile, posts=posts)


def parse_comment_items(
    items: List[Dict[str, Any]], post_url: str, comments_limit: int
) -> ScrapedCommentsResult:
    post_item = next((i for i in items if i.get("type") == "Post" or i.get("postUrl")), None)
    post = parse_post(post_item) if post_item else None
    if post is not None and not post.url:
        post.url = post_url

    comment_items = [i for i in items if i.get("text") and (i.get("ownerUsername") or i.get("username"))]
    comments = [parse_comment(item) for item in comment_items[:comments_limit]]
    return ScrapedCommentsResult(post_url=post_url, post=post, comments=comments)


class InstagramScraper:
    """Scrapes profiles (with recent posts and their comments) and single posts."""

    def __init__(
        self,
        client: Optional[ApifyClient] = None,
        *,
        profile_actor_id: Optional[str] = None,
        comments_actor_id: Optional[str] = None,
        posts_limit: Optional[int] = None,
        comments_limit: Optional[int] = None,
        profile_post_comments_limit: Optional[int] = None,
    ):
        self.client = client or ApifyClient()
        self.profile_actor_id = profile_actor_id or settings.profile_actor_id
        self.comments_actor_id = comments_actor_id or settings.comments_actor_id
        self.posts_limit = posts_limit or settings.profile_posts_limit
        self.comments_limit = comments_limit or settings.comments_limit
        self.profile_post_comments_limit = (
            profile_post_comments_limit or settings.profile_post_comments_limit
        )

    async def scrape(
        self, url: str, kind: str, progress_cb: Optional[ProgressCallback] = None
    ) -> ScrapeResult:
        if kind == "profile":
            profile = await self.scrape_profile(url, progress_cb=progress_cb)
            return ScrapeResult(type="profile", profile=profile)
        if kind == "post":
            if progress_cb:
                await progress_cb("Fetching comments...", 20)
            post = await self.scrape_post_comments(url, self.comments_limit)
            return ScrapeResult(type="post", post=post)
        raise InvalidInstagramUrl(f"Unknown scrape kind: {kind}")

    async def scrape_profile(
        self, url: str, progress_cb: Optional[ProgressCallback] = None
    ) -> ScrapedProfileResult:
        username = extract_username(url)
        run_input = {
            "usernames": [username],
            "resultsLimit": self.posts_limit,
            "resultsType": "posts",
        }
        if progress_cb:
            await progress_cb(f"Fetching profile @{username}...", 10)
        try:
            items = await self.client.run_actor(self.profile_actor_id, run_input)
        except ApifyError as exc:
            raise ScrapeError(f"Failed to scrape Instagram profile: {exc}") from exc
        if not items:
            raise ScrapeError(f"No data returned from Apify for profile: {username}")

        result = parse_profile_items(items, username, self.posts_limit)
        logger.info("Extracted %d post(s) for @%s", len(result.posts), result.profile.username)

        if progress_cb:
            await progress_cb("Fetching comments for recent posts...", 50)
        result.posts = await self._attach_comments(result.posts)
        return result

    async def scrape_post_comments(self, url: str, comments_limit: Optional[int] = None) -> ScrapedCommentsResult:
        limit = comments_limit or self.comments_limit
        run_input = {"directUrls": [url], "resultsLimit": limit}
        try:
            items = await self.client.run_actor(self.comments_actor_id, run_input)
        except ApifyError as exc:
            raise ScrapeError(f"Failed to scrape Instagram comments: {exc}") from exc
        if not items:
            raise ScrapeError(f"No comments returned from Apify for post: {url}")
        return parse_comment_items(items, url, limit)

    async def _attach_comments(self, posts: Iterable[PostInfo]) -> List[PostInfo]:
        sem = asyncio.Semaphore(MAX_CONCURRENT_COMMENT_FETCHES)

        async def fetch(post: PostInfo) -> PostInfo:
            if post.comments or not post.url or not post.comment_count:
                return post
            async with sem:
                try:
                    comments = await self.scrape_post_comments(post.url, self.profile_post_comments_limit)
                except ScrapeError as exc:
                    # Comments are a bonus; keep the post without them
                    logger.warning("Failed to fetch comments for post %s: %s", post.url, exc)
                    return post
            return post.model_copy(update={"comments": comments.comments or None})

        return list(await asyncio.gather(*(fetch(post) for post in posts)))
