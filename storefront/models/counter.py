from beanie import Document


class Counter(Document):
    """Named monotonic sequence; _id is the sequence name."""
    id: str
    seq: int = 0

    class Settings:
        name = "counters"
