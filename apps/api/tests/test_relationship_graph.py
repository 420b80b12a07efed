import math

import pytest

from content_graph.errors import NotFoundError, ValidationError
from content_graph.hierarchy import HierarchyStore
from content_graph.relationships import RelationshipGraph
from content_graph.repository import InMemoryContentCatalog, InMemoryGraphRepository
from content_graph.types import CreationMethod, RelationshipType


@pytest.fixture
def graph_parts():
    repository = InMemoryGraphRepository()
    return HierarchyStore(repository, InMemoryContentCatalog()), RelationshipGraph(repository)


async def _seed(store: HierarchyStore) -> None:
    await store.insert_root("long", "youtube", "video")
    await store.insert_root("clip", "tiktok", "short_video")
    await store.insert_root("post", "linkedin", "article")


@pytest.mark.asyncio
async def test_add_edge_stores_typed_edge(graph_parts):
    store, graph = graph_parts
    await _seed(store)

    edge = await graph.add_edge(
        "long", "clip", "Derivative", 0.9, "ai_suggested", {"model": "v2", "score": 0.91}
    )

    assert edge.relationship_type == RelationshipType.DERIVATIVE
    assert edge.creation_method == CreationMethod.AI_SUGGESTED
    assert edge.confidence == 0.9
    assert edge.metadata == {"model": "v2", "score": 0.91}
    assert await graph.get_edge("long", "clip") == edge


@pytest.mark.asyncio
async def test_add_edge_does_not_touch_node_paths(graph_parts):
    store, graph = graph_parts
    await _seed(store)

    await graph.add_edge("long", "clip", RelationshipType.PARENT, 1.0, CreationMethod.USER_DEFINED)

    assert (await store.get("clip")).path == ("clip",)


@pytest.mark.asyncio
async def test_re_adding_an_edge_overwrites_attributes_but_keeps_creation_order(graph_parts):
    store, graph = graph_parts
    await _seed(store)

    first = await graph.add_edge("long", "clip", "derivative", 0.9, "system_detected")
    await graph.add_edge("long", "post", "reference", 0.5, "user_defined")
    updated = await graph.add_edge("long", "clip", "repurposed", 0.4, "user_defined")

    assert updated.relationship_type == RelationshipType.REPURPOSED
    assert updated.confidence == 0.4
    assert updated.sequence == first.sequence
    edges = await graph.edges_for("long")
    assert [edge.target_id for edge in edges] == ["clip", "post"]


@pytest.mark.asyncio
@pytest.mark.parametrize("confidence", [-0.01, 1.01, math.nan, "high"])
async def test_add_edge_rejects_out_of_range_confidence(graph_parts, confidence):
    store, graph = graph_parts
    await _seed(store)

    with pytest.raises(ValidationError):
        await graph.add_edge("long", "clip", "derivative", confidence, "ai_suggested")


@pytest.mark.asyncio
async def test_add_edge_accepts_confidence_bounds(graph_parts):
    store, graph = graph_parts
    await _seed(store)

    low = await graph.add_edge("long", "clip", "reference", 0.0, "ai_suggested")
    high = await graph.add_edge("long", "post", "reference", 1.0, "ai_suggested")

    assert low.confidence == 0.0
    assert high.confidence == 1.0


@pytest.mark.asyncio
async def test_add_edge_rejects_self_loops_unknown_types_and_nested_metadata(graph_parts):
    store, graph = graph_parts
    await _seed(store)

    with pytest.raises(ValidationError):
        await graph.add_edge("long", "long", "reference", 0.5, "user_defined")
    with pytest.raises(ValidationError):
        await graph.add_edge("long", "clip", "sibling", 0.5, "user_defined")
    with pytest.raises(ValidationError):
        await graph.add_edge("long", "clip", "reference", 0.5, "guessed")
    with pytest.raises(ValidationError):
        await graph.add_edge("long", "clip", "reference", 0.5, "user_defined", {"tags": ["a", "b"]})


@pytest.mark.asyncio
async def test_add_edge_requires_existing_endpoints(graph_parts):
    store, graph = graph_parts
    await _seed(store)

    with pytest.raises(NotFoundError):
        await graph.add_edge("long", "missing", "reference", 0.5, "user_defined")
    with pytest.raises(NotFoundError):
        await graph.add_edge("missing", "long", "reference", 0.5, "user_defined")


@pytest.mark.asyncio
async def test_remove_edge(graph_parts):
    store, graph = graph_parts
    await _seed(store)
    await graph.add_edge("long", "clip", "derivative", 0.9, "ai_suggested")

    await graph.remove_edge("long", "clip")

    with pytest.raises(NotFoundError):
        await graph.get_edge("long", "clip")
    with pytest.raises(NotFoundError):
        await graph.remove_edge("long", "clip")


@pytest.mark.asyncio
async def test_removing_a_node_drops_its_edges(graph_parts):
    store, graph = graph_parts
    await _seed(store)
    await graph.add_edge("long", "clip", "derivative", 0.9, "ai_suggested")
    await graph.add_edge("post", "clip", "reference", 0.3, "ai_suggested")
    await graph.add_edge("long", "post", "repurposed", 0.7, "user_defined")

    removal = await store.remove_node("clip")

    assert removal.removed_edges == 2
    assert [edge.key for edge in await graph.edges_for("long")] == [("long", "post")]
    with pytest.raises(NotFoundError):
        await graph.edges_for("clip")


@pytest.mark.asyncio
async def test_edges_within_only_returns_internal_edges(graph_parts):
    store, graph = graph_parts
    await _seed(store)
    await graph.add_edge("long", "clip", "derivative", 0.9, "ai_suggested")
    await graph.add_edge("long", "post", "repurposed", 0.7, "user_defined")

    edges = await graph.edges_within(["long", "clip"])

    assert [edge.key for edge in edges] == [("long", "clip")]
    assert await graph.edges_within([]) == []
