import pytest

from realdeal.domain.levels import ThresholdTable
from realdeal.infrastructure.cache.memory import InMemoryCacheStore
from realdeal.services.cache import CacheCoordinator
from realdeal.services.comment_service import CommentService
from realdeal.services.experience_service import ExperienceService
from realdeal.services.genre_service import GenreService
from realdeal.services.post_service import PostService
from realdeal.services.reaction_service import ReactionService
from realdeal.services.recommendation import RecommendationRanker
from tests.fakes import (
    FakeCommentRepository,
    FakeDatabase,
    FakeGenreRepository,
    FakePostRepository,
    FakeReactionRepository,
    FakeUserRepository,
)


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def store():
    return InMemoryCacheStore()


@pytest.fixture
def cache(store):
    return CacheCoordinator(store, load_timeout=1.0)


@pytest.fixture
def user_repo(db):
    return FakeUserRepository(db)


@pytest.fixture
def post_repo(db):
    return FakePostRepository(db)


@pytest.fixture
def comment_repo(db):
    return FakeCommentRepository(db)


@pytest.fixture
def reaction_repo(db):
    return FakeReactionRepository(db)


@pytest.fixture
def genre_repo(db):
    return FakeGenreRepository(db)


@pytest.fixture
def experience_service(user_repo):
    return ExperienceService(user_repo, ThresholdTable())


@pytest.fixture
def reaction_service(reaction_repo, post_repo, comment_repo, experience_service, cache):
    return ReactionService(reaction_repo, post_repo, comment_repo, experience_service, cache)


@pytest.fixture
def genre_service(genre_repo, post_repo, cache):
    return GenreService(genre_repo, post_repo, cache)


@pytest.fixture
def post_service(post_repo, genre_service, experience_service, genre_repo, cache):
    return PostService(
        post_repo,
        genre_service,
        experience_service,
        RecommendationRanker(genre_repo),
        cache,
    )


@pytest.fixture
def comment_service(comment_repo, post_repo, cache):
    return CommentService(comment_repo, post_repo, cache)
