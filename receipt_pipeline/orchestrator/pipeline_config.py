"""
Pipeline Configuration.

PipelineConfig collects the `pipeline.*` settings the orchestrator runs
with, validates them, and provides the preset operating modes.

Author: ML Engineering Team
"""

from dataclasses import dataclass, replace
from typing import Any, Dict

from config import get_config
from receipt_pipeline.utils.exceptions import ConfigurationError

OPERATING_MODES = ('production', 'development', 'testing')


@dataclass(frozen=True)
class PipelineConfig:
    """
    Orchestrator options.

    Attributes:
        cost_threshold_per_receipt: Budget per receipt in USD
        quality_threshold: Minimum parse quality (0-1) before fallback
        max_retries: Retries allowed per collaborator call
        timeout_ms: Default deadline for one receipt
        enable_vendor_detection: Run vendor detection
        enable_specialized_parsing: Run the LLM parsing agent
        enable_fallbacks: Run the fallback chain
        enable_enhanced_preprocessing: Run the full scanner pipeline
        max_fallback_attempts: Maximum fallback strategy executions
        max_total_fallback_cost: Maximum fallback spend in USD
        min_vendor_confidence: Detection confidence below which fallback runs
        min_math_consistency: Math consistency below which fallback runs
    """
    cost_threshold_per_receipt: float = 0.05
    quality_threshold: float = 0.7
    max_retries: int = 2
    timeout_ms: int = 30000
    enable_vendor_detection: bool = True
    enable_specialized_parsing: bool = True
    enable_fallbacks: bool = True
    enable_enhanced_preprocessing: bool = True
    max_fallback_attempts: int = 3
    max_total_fallback_cost: float = 0.1
    min_vendor_confidence: float = 0.4
    min_math_consistency: float = 50.0

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Check every option's range.

        Raises:
            ConfigurationError: On the first out-of-range option.
        """
        checks = [
            ('pipeline.cost_threshold_per_receipt', self.cost_threshold_per_receipt,
             self.cost_threshold_per_receipt >= 0, "must be >= 0"),
            ('pipeline.quality_threshold', self.quality_threshold,
             0 <= self.quality_threshold <= 1, "must be between 0 and 1"),
            ('pipeline.max_retries', self.max_retries,
             self.max_retries >= 0, "must be >= 0"),
            ('pipeline.timeout_ms', self.timeout_ms,
             self.timeout_ms > 0, "must be > 0"),
            ('pipeline.max_fallback_attempts', self.max_fallback_attempts,
             self.max_fallback_attempts >= 0, "must be >= 0"),
            ('pipeline.max_total_fallback_cost', self.max_total_fallback_cost,
             self.max_total_fallback_cost >= 0, "must be >= 0"),
            ('pipeline.min_vendor_confidence', self.min_vendor_confidence,
             0 <= self.min_vendor_confidence <= 1, "must be between 0 and 1"),
            ('pipeline.min_math_consistency', self.min_math_consistency,
             0 <= self.min_math_consistency <= 100, "must be between 0 and 100"),
        ]
        for key, value, valid, reason in checks:
            if not valid:
                raise ConfigurationError(key, value, reason)

    @classmethod
    def from_config(cls) -> 'PipelineConfig':
        """
        Build from the `pipeline.*` section of settings.yaml.

        Raises:
            ConfigurationError: If a value has the wrong type or range.
        """
        values = {}
        for name, caster in (
            ('cost_threshold_per_receipt', float),
            ('quality_threshold', float),
            ('max_retries', int),
            ('timeout_ms', int),
            ('enable_vendor_detection', bool),
            ('enable_specialized_parsing', bool),
            ('enable_fallbacks', bool),
            ('enable_enhanced_preprocessing', bool),
            ('max_fallback_attempts', int),
            ('max_total_fallback_cost', float),
            ('min_vendor_confidence', float),
            ('min_math_consistency', float),
        ):
            key = f"pipeline.{name}"
            raw = get_config(key, cls.__dataclass_fields__[name].default)
            try:
                values[name] = caster(raw)
            except (TypeError, ValueError):
                raise ConfigurationError(key, raw, f"expected {caster.__name__}")
        return cls(**values)

    @classmethod
    def for_mode(cls, mode: str) -> 'PipelineConfig':
        """
        Preset for an operating mode, layered over the file settings.

        Args:
            mode: 'production', 'development' or 'testing'.

        Raises:
            ConfigurationError: For an unknown mode.

        Example:
            >>> PipelineConfig.for_mode("testing").enable_specialized_parsing
            False
        """
        base = cls.from_config()
        if mode == 'production':
            return replace(base, quality_threshold=0.75, cost_threshold_per_receipt=0.03)
        if mode == 'development':
            return replace(base, quality_threshold=0.6, cost_threshold_per_receipt=0.05)
        if mode == 'testing':
            return replace(
                base,
                enable_specialized_parsing=False,
                quality_threshold=0.5,
                cost_threshold_per_receipt=0.01,
            )
        raise ConfigurationError('mode', mode, f"expected one of {OPERATING_MODES}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase option names."""
        return {
            'costThresholdPerReceipt': self.cost_threshold_per_receipt,
            'qualityThreshold': self.quality_threshold,
            'maxRetries': self.max_retries,
            'timeoutMs': self.timeout_ms,
            'enableVendorDetection': self.enable_vendor_detection,
            'enableSpecializedParsing': self.enable_specialized_parsing,
            'enableFallbacks': self.enable_fallbacks,
            'enableEnhancedPreprocessing': self.enable_enhanced_preprocessing,
            'maxFallbackAttempts': self.max_fallback_attempts,
            'maxTotalFallbackCost': self.max_total_fallback_cost,
        }
