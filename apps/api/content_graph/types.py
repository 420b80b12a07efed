"""Content graph contracts shared by the hierarchy, edge store and traversal."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from content_graph.errors import ValidationError


MetadataValue = Union[str, int, float, bool, None]


class PlatformType(str, Enum):
    YOUTUBE = "youtube"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    OTHER = "other"


class ContentType(str, Enum):
    VIDEO = "video"
    SHORT_VIDEO = "short_video"
    PHOTO = "photo"
    CAROUSEL = "carousel"
    STORY = "story"
    POST = "post"
    ARTICLE = "article"
    PODCAST = "podcast"
    OTHER = "other"


class RelationshipType(str, Enum):
    PARENT = "parent"          # Source is the structural parent of target
    DERIVATIVE = "derivative"  # Clip/cut taken from the source
    REPURPOSED = "repurposed"  # Same idea reshaped for another format
    REACTION = "reaction"      # Response to the source
    REFERENCE = "reference"    # Mentions or links the source


class CreationMethod(str, Enum):
    SYSTEM_DETECTED = "system_detected"
    AI_SUGGESTED = "ai_suggested"
    USER_DEFINED = "user_defined"
    PLATFORM_LINKED = "platform_linked"


@dataclass(frozen=True)
class ContentNode:
    """A content item placed in the materialized-path tree.

    ``path`` holds every ancestor id from the root down to the node itself,
    so depth and root are always derived from it.
    """

    id: str
    platform: PlatformType
    content_type: ContentType
    path: Tuple[str, ...]
    published_at: Optional[datetime] = None
    creator_id: Optional[str] = None

    @property
    def depth(self) -> int:
        return len(self.path) - 1

    @property
    def root_id(self) -> str:
        return self.path[0]

    @property
    def parent_id(self) -> Optional[str]:
        return self.path[-2] if len(self.path) > 1 else None

    def with_path(self, path: Tuple[str, ...]) -> "ContentNode":
        return ContentNode(
            id=self.id,
            platform=self.platform,
            content_type=self.content_type,
            path=tuple(path),
            published_at=self.published_at,
            creator_id=self.creator_id,
        )


@dataclass(frozen=True)
class RelationshipEdge:
    source_id: str
    target_id: str
    relationship_type: RelationshipType
    confidence: float
    creation_method: CreationMethod
    metadata: Dict[str, MetadataValue] = field(default_factory=dict)
    sequence: int = 0

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source_id, self.target_id)


@dataclass(frozen=True)
class ContentRecord:
    """Catalog entry for published content, independent of the path index."""

    id: str
    creator_id: str
    platform: PlatformType
    content_type: ContentType
    published_at: Optional[datetime] = None
    title: Optional[str] = None


@dataclass(frozen=True)
class GraphSnapshot:
    """Nodes and edges read together in one consistent read."""

    nodes: Dict[str, ContentNode]
    edges: List[RelationshipEdge]

    def contains(self, node_id: str) -> bool:
        return node_id in self.nodes


def effective_edges(snapshot: GraphSnapshot) -> List[RelationshipEdge]:
    """Derived tree links (shallowest first) followed by stored edges in creation order.

    Every parent link implied by a node path counts as a ``parent`` edge at
    full confidence. A stored edge for the same (parent, child) pair replaces
    the derived one.
    """
    stored_keys = {edge.key for edge in snapshot.edges}
    derived: List[RelationshipEdge] = []
    for node in sorted(snapshot.nodes.values(), key=lambda item: (item.depth, item.path)):
        parent_id = node.parent_id
        if parent_id is None or parent_id not in snapshot.nodes:
            continue
        if (parent_id, node.id) in stored_keys:
            continue
        derived.append(
            RelationshipEdge(
                source_id=parent_id,
                target_id=node.id,
                relationship_type=RelationshipType.PARENT,
                confidence=1.0,
                creation_method=CreationMethod.SYSTEM_DETECTED,
            )
        )
    return derived + sorted(snapshot.edges, key=lambda edge: edge.sequence)


@dataclass(frozen=True)
class ContentFamily:
    root_id: str
    nodes: List[ContentNode]
    edges: List[RelationshipEdge]
    platform_distribution: Dict[str, int]


@dataclass(frozen=True)
class FamilySummary:
    root_id: str
    node_count: int
    max_depth: int


@dataclass(frozen=True)
class CycleReport:
    has_cycles: bool
    cycle_nodes: List[str]


@dataclass(frozen=True)
class CentralityScore:
    node_id: str
    degree: float
    betweenness: float


@dataclass(frozen=True)
class WeightedPath:
    nodes: List[str]
    total_weight: float


@dataclass(frozen=True)
class NodeRemoval:
    node_id: str
    removed_edges: int
    promoted_roots: List[str]
    reattached_to: Optional[str] = None
    reattached_children: List[str] = field(default_factory=list)


def parse_enum(enum_cls, value, label: str):
    """Coerce ``value`` into ``enum_cls`` or raise ValidationError naming the field."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Unknown {label} {value!r}. Expected one of: {allowed}.") from None
