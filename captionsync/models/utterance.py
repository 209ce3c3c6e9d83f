from dataclasses import dataclass


@dataclass
class Utterance:
    """A speaker-attributed, time-coded transcript segment."""

    speaker: str
    start_ms: int       # milliseconds on the media timeline
    end_ms: int
    text: str           # user-editable; timing is never rewritten

    def __post_init__(self) -> None:
        if self.start_ms >= self.end_ms:
            raise ValueError(
                f"utterance must end after it starts ({self.start_ms} >= {self.end_ms})"
            )

    # ------------------------------------------------------------------ helpers
    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms

    def contains(self, t_ms: float) -> bool:
        """True when *t_ms* lies inside the closed window ``[start_ms, end_ms]``."""
        return self.start_ms <= t_ms <= self.end_ms


@dataclass(frozen=True)
class WordChunk:
    """Up to four words of one utterance, with their display window and animation."""

    text: str
    start_ms: float
    end_ms: float
    speaker: str
    opacity: float = 1.0
    scale: float = 1.0
    translate_y: float = 0.0
