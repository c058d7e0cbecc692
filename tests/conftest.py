import asyncio

import pytest
from fastapi.testclient import TestClient

from instalens.api.v1 import ask as ask_api
from instalens.api.v1 import credits as credits_api
from instalens.api.v1 import image_proxy as image_proxy_api
from instalens.api.v1 import scrape as scrape_api
from instalens.jobs.memory_store import InMemoryJobStore
from instalens.scraping.models import (
    CommentInfo,
    PostInfo,
    ProfileInfo,
    ScrapedCommentsResult,
    ScrapedProfileResult,
    ScrapeResult,
)


class FakeScraper:
    """Returns canned results (or raises) instead of calling Apify."""

    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result or sample_profile_result()
        self.error = error
        self.delay = delay
        self.calls = []

    async def scrape(self, url, kind, progress_cb=None):
        self.calls.append((url, kind))
        if progress_cb:
            await progress_cb("Working...", 50)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


def sample_profile_result() -> ScrapeResult:
    return ScrapeResult(
        type="profile",
        profile=ScrapedProfileResult(
            profile=ProfileInfo(
                username="alice",
                full_name="Alice Example",
                bio="Coffee and cameras",
                followers=1200,
                following=180,
                post_count=2,
                profile_url="https://www.instagram.com/alice/",
            ),
            posts=[
                PostInfo(
                    id="p1",
                    url="https://www.instagram.com/p/ABC123/",
                    caption="Morning espresso",
                    like_count=87,
                    comment_count=1,
                    comments=[CommentInfo(id="c1", username="bob", text="Looks great!")],
                )
            ],
        ),
    )


def sample_comments_result() -> ScrapeResult:
    return ScrapeResult(
        type="post",
        post=ScrapedCommentsResult(
            post_url="https://www.instagram.com/p/ABC123/",
            comments=[
                CommentInfo(id="c1", username="bob", text="Love it", like_count=3),
                CommentInfo(
                    id="c2",
                    username="carol",
                    text="Where is this?",
                    replies=[CommentInfo(id="c3", username="alice", text="Lisbon")],
                ),
            ],
        ),
    )


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def fake_scraper():
    return FakeScraper()


@pytest.fixture
def test_client():
    """FastAPI test client without running the lifespan; tests wire services."""
    from instalens.main import app

    yield TestClient(app)

    scrape_api.set_job_store(None)
    scrape_api.set_dispatcher(None)
    ask_api.set_assistant(None)
    credits_api.set_apify_client(None)
    image_proxy_api.set_transport(None)
