"""Data models for event ingestion."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union


EVENT_TYPES = (
    'conference',
    'hackathon',
    'meetup',
    'workshop',
    'summit',
    'party',
    'networking',
    'other',
)


@dataclass
class CandidateEvent:
    """Event record as extracted from a source page."""
    name: Optional[str]
    event_date: Optional[str]
    event_type: str = 'other'
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    venue: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    organizer: Optional[str] = None
    event_url: Optional[str] = None
    rsvp_url: Optional[str] = None
    image_url: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    blockchain_focus: List[str] = field(default_factory=list)

    def is_valid(self) -> bool:
        return bool(self.name and self.name.strip() and self.event_date)


@dataclass
class PersistedEvent(CandidateEvent):
    """Event record as held by the event store."""
    id: Optional[str] = None
    source: str = ''
    source_url: Optional[str] = None
    source_id: Optional[str] = None
    status: str = 'draft'
    created_at: Optional[str] = None
    end_date: Optional[str] = None
    is_multi_day: bool = False


@dataclass
class Accepted:
    """Candidate admitted by the dedup session."""
    record: PersistedEvent


@dataclass
class RejectedDuplicate:
    """Candidate matched a key already seen."""
    matched_key: str


@dataclass
class RejectedInvalid:
    """Candidate failed validation."""
    reason: str


Decision = Union[Accepted, RejectedDuplicate, RejectedInvalid]


@dataclass
class DuplicateGroup:
    """Historical records sharing an identity key."""
    key: str
    reason: str
    keep: PersistedEvent
    duplicates: List[PersistedEvent]


@dataclass
class MergeGroup:
    """Single-day records collapsed into one ranged event."""
    keep: PersistedEvent
    absorbed: List[PersistedEvent]
    start_date: str
    end_date: str


@dataclass
class InsertResult:
    """Result of a bulk insert."""
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class SourceResult:
    """Per-source counts for one ingestion run."""
    url: str
    extracted: int = 0
    invalid: int = 0
    duplicates: int = 0
    skipped_past: int = 0
    accepted: int = 0
    inserted: int = 0
    unchanged: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class RunSummary:
    """Result of an ingestion run."""
    sources: List[SourceResult] = field(default_factory=list)
    dry_run: bool = False

    @property
    def failed_sources(self) -> List[str]:
        return [result.url for result in self.sources if not result.success]

    def totals(self) -> Dict[str, int]:
        keys = ('extracted', 'invalid', 'duplicates', 'skipped_past', 'accepted', 'inserted')
        return {
            key: sum(getattr(result, key) for result in self.sources)
            for key in keys
        }
