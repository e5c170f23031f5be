"""
Recognition Result Data Classes.

Classes:
    OCRWord: Individual recognized word with bounding box
    RecognitionResult: Text and confidence for one image

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass
class OCRWord:
    """
    A single word recognized by a provider.

    Attributes:
        text: The recognized text content
        bbox: Bounding box as (x1, y1, x2, y2) in pixels
        confidence: Word confidence (0-100)
        line_key: Provider line identifier used to rebuild lines

    Example:
        >>> word = OCRWord(text="TOTAL", bbox=(10, 400, 80, 420), confidence=96.0)
    """
    text: str
    bbox: Tuple[int, int, int, int]
    confidence: float = 0.0
    line_key: Tuple[int, ...] = (0,)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'text': self.text,
            'bbox': list(self.bbox),
            'confidence': self.confidence,
        }

    def __repr__(self) -> str:
        return f"OCRWord('{self.text}', conf={self.confidence:.1f})"


@dataclass
class RecognitionResult:
    """
    Output of the recognition adapter for one image.

    Attributes:
        text: Recognized text, one receipt line per text line
        confidence: Mean word confidence (0-100)
        provider: Name of the provider that produced the text
        processing_time: Seconds spent recognizing
        words: Word-level detail, when the provider reports it
        metadata: Provider parameters and retry details
    """
    text: str
    confidence: float
    provider: str
    processing_time: float = 0.0
    words: List[OCRWord] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    @property
    def line_count(self) -> int:
        return len([line for line in self.text.splitlines() if line.strip()])

    @classmethod
    def from_words(
        cls,
        words: List[OCRWord],
        provider: str,
        processing_time: float = 0.0,
        metadata: Dict[str, Any] = None
    ) -> 'RecognitionResult':
        """
        Build a result by grouping words into lines.

        Words sharing a line key are joined left to right; lines are
        ordered by key.
        """
        lines: Dict[Tuple[int, ...], List[OCRWord]] = {}
        for word in words:
            lines.setdefault(word.line_key, []).append(word)

        text_lines = []
        for key in sorted(lines):
            ordered = sorted(lines[key], key=lambda w: w.bbox[0])
            text_lines.append(' '.join(w.text for w in ordered))

        confidence = sum(w.confidence for w in words) / len(words) if words else 0.0
        return cls(
            text='\n'.join(text_lines),
            confidence=confidence,
            provider=provider,
            processing_time=processing_time,
            words=words,
            metadata=metadata or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase trace format (without word detail)."""
        return {
            'text': self.text,
            'confidence': round(self.confidence, 2),
            'provider': self.provider,
            'processingTime': round(self.processing_time, 4),
            'wordCount': len(self.words),
            'metadata': dict(self.metadata),
        }

    def __repr__(self) -> str:
        return (
            f"RecognitionResult(provider='{self.provider}', lines={self.line_count}, "
            f"confidence={self.confidence:.1f})"
        )
