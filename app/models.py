from dataclasses import asdict, dataclass, field


@dataclass
class ClassRecord:
    id: str
    user_id: str
    name: str
    sync_key: str | None
    sync_enabled: bool
    created_at: str


@dataclass
class Lecture:
    id: str
    class_id: str
    user_id: str
    original_name: str | None
    descriptor: str | None
    kind: str  # LECTURE | NOTES | SLIDESHOW | HANDOUT | OTHER ...
    mime: str | None
    status: str  # PROCESSING | READY | FAILED
    sync_key: str | None
    include_in_memory: bool
    transcript: str | None
    text_content: str | None
    summary: str | None
    key_terms: list[str]
    duration_sec: int | None
    created_at: str


@dataclass
class Chunk:
    id: str
    class_id: str
    lecture_id: str
    source: str  # transcript | notes | document
    start_sec: float | None
    end_sec: float | None
    text: str
    vector: list[float] | None  # None until an embedding is attached
    created_at: str


@dataclass
class Span:
    start_sec: float
    end_sec: float


@dataclass
class Citation:
    idx: int  # 1-based, matches the [#idx] numbering in the prompt
    lecture_id: str
    source: str
    preview: str
    score: float
    span: Span | None = None
    original_name: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ChatMessage:
    id: int
    class_id: str
    user_id: str
    role: str  # user | assistant
    content: str
    citations: list[dict] = field(default_factory=list)
    created_at: str = ""
