from __future__ import annotations

import dataclasses

import pytest

from sqla_preloads import BelongsTo, Has, HasThrough, NotLoaded, Registry, through
from sqla_preloads.relations import Through, chain_cardinality

from ..models import Author, Category, Comment, Permalink, Post


class TestRelationTypes:
    def test_defaults(self) -> None:
        has = Has(name="comments", owner=Post, owner_key="id", related=Comment, related_key="post_id")
        belongs = BelongsTo(name="post", owner=Comment, owner_key="post_id", related=Post, related_key="id")

        assert has.cardinality == "many"
        assert belongs.cardinality == "one"
        assert has.source is None
        assert belongs.source is None

    def test_frozen(self, registry: Registry) -> None:
        rel = registry.relation(Post, "comments")
        with pytest.raises(dataclasses.FrozenInstanceError):
            rel.name = "other"  # type: ignore[misc]

    def test_hashable(self, registry: Registry) -> None:
        rels = {registry.relation(Post, "comments"), registry.relation(Post, "comments")}

        assert len(rels) == 1

    def test_through_repr_hides_hops(self, registry: Registry) -> None:
        text = repr(registry.relation(Author, "posts_comments"))

        assert "chain=('posts', 'comments')" in text
        assert "hops=" not in text


class TestChainCardinality:
    def test_all_one(self, registry: Registry) -> None:
        hops = (registry.relation(Comment, "post"), registry.relation(Post, "permalink"))

        assert chain_cardinality(hops) == "one"

    def test_any_many(self, registry: Registry) -> None:
        hops = (registry.relation(Comment, "post"), registry.relation(Post, "comments"))

        assert chain_cardinality(hops) == "many"


class TestDirectHops:
    def test_flat_chain(self, registry: Registry) -> None:
        rel = registry.relation(Author, "posts_permalinks")

        assert isinstance(rel, HasThrough)
        assert rel.direct_hops() == (registry.relation(Author, "posts"), registry.relation(Post, "permalink"))

    def test_nested_chain_is_flattened(self, registry: Registry) -> None:
        inner = registry.relation(Comment, "post_author")
        outer = HasThrough(
            name="post_author_posts",
            owner=Comment,
            chain=("post_author", "posts"),
            hops=(inner, registry.relation(Author, "posts")),
            related=Post,
            cardinality="many",
        )

        assert [hop.name for hop in outer.direct_hops()] == ["post", "author", "posts"]
        assert outer.owner_key == "post_id"

    def test_source_comes_from_last_hop(self, registry: Registry) -> None:
        outer = HasThrough(
            name="posts_author_emails",
            owner=Comment,
            chain=("post_author", "emails"),
            hops=(registry.relation(Comment, "post_author"), registry.relation(Author, "emails")),
            related=Permalink,
            cardinality="many",
        )

        assert outer.source == "users_emails"


class TestThroughMarker:
    def test_class_access_returns_marker(self) -> None:
        marker = Author.posts_comments

        assert isinstance(marker, Through)
        assert marker.chain == ("posts", "comments")
        assert marker.name == "posts_comments"

    def test_repr(self) -> None:
        assert repr(Category.siblings) == "through('parent', 'children')"

    def test_instance_defaults_to_not_loaded(self) -> None:
        author = Author(id=1)

        assert author.posts_comments == NotLoaded(Author, "posts_comments")
        assert repr(author.posts_comments) == "<association 'posts_comments' of Author is not loaded>"

    def test_assignment(self) -> None:
        author = Author(id=1)
        comments = [Comment(id=1)]
        author.posts_comments = comments

        assert author.posts_comments is comments

    def test_assignment_is_per_instance(self) -> None:
        first, second = Author(id=1), Author(id=2)
        first.posts_comments = []

        assert first.posts_comments == []
        assert isinstance(second.posts_comments, NotLoaded)

    def test_chain_too_short(self) -> None:
        with pytest.raises(ValueError, match="at least 2 relations"):
            through("posts")

    def test_empty_chain(self) -> None:
        with pytest.raises(ValueError, match="at least 2 relations"):
            through()
