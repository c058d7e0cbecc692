"""Answer questions about scraped Instagram data with OpenAI."""

import logging
import random
import time
from typing import Dict, List, Optional

from openai import OpenAI, OpenAIError, RateLimitError

from instalens.scraping.models import ScrapedCommentsResult, ScrapedProfileResult

logger = logging.getLogger(__name__)

MAX_PROFILE_POSTS = 10
MAX_COMMENTS_PER_POST = 50
MAX_POST_COMMENTS = 200
MAX_HISTORY_MESSAGES = 10

SYSTEM_PROMPT = """You are an assistant analyzing Instagram content (posts and comments).
Your role is to:
- Answer questions based ONLY on the provided context
- Summarize and extract insights from the Instagram data
- Be concise and accurate
- Do NOT make up information that isn't in the context
- If the context doesn't contain enough information to answer, say so clearly
- Use the conversation history to understand follow-up questions

You will receive:
1. Context data containing Instagram profile information, post captions, and/or comments
2. Conversation history (previous questions and answers)
3. A current user question"""


class AssistantError(Exception):
    """The language model call failed or returned nothing."""


class AssistantNotConfigured(AssistantError):
    """No OpenAI API key is configured."""


def serialize_profile_context(data: ScrapedProfileResult, max_posts: int = MAX_PROFILE_POSTS) -> str:
    profile = data.profile
    lines = ["PROFILE INFORMATION:", f"Username: {profile.username}"]
    if profile.full_name:
        lines.append(f"Full Name: {profile.full_name}")
    if profile.bio:
        lines.append(f"Bio: {profile.bio}")
    if profile.followers is not None:
        lines.append(f"Followers: {profile.followers}")
    if profile.following is not None:
        lines.append(f"Following: {profile.following}")
    if profile.post_count is not None:
        lines.append(f"Total Posts: {profile.post_count}")
    lines.append("")

    if data.posts:
        shown = data.posts[:max_posts]
        lines.append(f"RECENT POSTS (showing latest {len(shown)}):")
        for idx, post in enumerate(shown, start=1):
            lines.append(f"\nPost {idx}:")
            if post.caption:
                lines.append(f"Caption: {post.caption}")
            if post.timestamp:
                lines.append(f"Date: {post.timestamp}")
            if post.like_count is not None:
                lines.append(f"Likes: {post.like_count}")
            if post.comment_count is not None:
                lines.append(f"Comments: {post.comment_count}")

            if post.comments:
                lines.append(f"\n  Comments on this post ({len(post.comments)}):")
                for n, comment in enumerate(post.comments[:MAX_COMMENTS_PER_POST], start=1):
                    lines.append(f"    {n}. @{comment.username}: {comment.text}")
                    for reply in comment.replies or []:
                        lines.append(f"      Reply by @{reply.username}: {reply.text}")
                if len(post.comments) > MAX_COMMENTS_PER_POST:
                    lines.append(f"    ... and {len(post.comments) - MAX_COMMENTS_PER_POST} more comments")

    return "\n".join(lines)


def serialize_comments_context(data: ScrapedCommentsResult, max_comments: int = MAX_POST_COMMENTS) -> str:
    lines: List[str] = []
    if data.post:
        lines.append("POST INFORMATION:")
        if data.post.caption:
            lines.append(f"Caption: {data.post.caption}")
        if data.post.timestamp:
            lines.append(f"Date: {data.post.timestamp}")
        if data.post.like_count is not None:
            lines.append(f"Likes: {data.post.like_count}")
        lines.append("")

    if data.comments:
        shown = data.comments[:max_comments]
        lines.append(f"COMMENTS (showing latest {len(shown)}):")
        for idx, comment in enumerate(shown, start=1):
            lines.append(f"\nComment {idx} by @{comment.username}:")
            lines.append(comment.text)
            if comment.timestamp:
                lines.append(f"Date: {comment.timestamp}")
            if comment.like_count is not None:
                lines.append(f"Likes: {comment.like_count}")
            if comment.replies:
                lines.append(f"Replies ({len(comment.replies)}):")
                for n, reply in enumerate(comment.replies, start=1):
                    lines.append(f"  Reply {n} by @{reply.username}: {reply.text}")

    return "\n".join(lines)


def build_context(
    profile: Optional[ScrapedProfileResult] = None,
    comments: Optional[ScrapedCommentsResult] = None,
) -> str:
    parts = []
    if profile:
        parts.append(serialize_profile_context(profile))
    if comments:
        parts.append(serialize_comments_context(comments))
    if not parts:
        raise ValueError("No context data provided (profile or comments required)")
    return "\n\n---\n\n".join(parts)


def build_messages(
    question: str,
    context: str,
    history: Optional[List[Dict[str, str]]] = None,
) -> List[Dict[str, str]]:
    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": f"CONTEXT:\n{context}"},
    ]
    for message in (history or [])[-MAX_HISTORY_MESSAGES:]:
        role = "user" if message.get("role") == "user" else "assistant"
        messages.append({"role": role, "content": message.get("content", "")})
    messages.append({"role": "user", "content": question})
    return messages


class InstagramAssistant:
    """Stateless Q&A over scraped data; callers resend the history each turn."""

    def __init__(
        self,
        openai_api_key: Optional[str] = None,
        openai_model: str = "gpt-4o-mini",
        client: Optional[OpenAI] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        max_retries: int = 2,
    ):
        self.openai_model_name = openai_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_retries = max_retries

        if client is not None:
            self.client = client
        elif openai_api_key:
            self.client = OpenAI(api_key=openai_api_key)
            logger.info("Initialized OpenAI client with model: %s", openai_model)
        else:
            logger.warning("No OpenAI API key provided")
            self.client = None

    def answer(
        self,
        question: str,
        profile: Optional[ScrapedProfileResult] = None,
        comments: Optional[ScrapedCommentsResult] = None,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        if self.client is None:
            raise AssistantNotConfigured("OPENAI_API_KEY environment variable is not set")

        messages = build_messages(question, build_context(profile, comments), history)

        for attempt in range(self.max_retries + 1):
            try:
                response = self.client.chat.completions.create(
                    model=self.openai_model_name,
                    messages=messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                )
                break
            except RateLimitError as exc:
                if attempt >= self.max_retries:
                    raise AssistantError(f"Failed to get AI answer: {exc}") from exc
                sleep_time = 2 ** attempt + random.uniform(0, 1)
                logger.warning("Rate limited by OpenAI, retrying in %.2fs", sleep_time)
                time.sleep(sleep_time)
            except OpenAIError as exc:
                logger.error("Error calling OpenAI: %s", exc)
                raise AssistantError(f"Failed to get AI answer: {exc}") from exc

        answer = response.choices[0].message.content if response.choices else None
        if not answer:
            raise AssistantError("No response from OpenAI")
        logger.info("Generated answer: %d characters", len(answer))
        return answer
