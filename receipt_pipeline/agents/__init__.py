"""
Agent Module for the Receipt Pipeline.

This module provides the text-understanding stages:
    - Vendor detection against the vendor registry
    - Vendor-specific parsing through an LLM client
    - Parse quality assessment
"""

from .vendor_detection import VendorDetectionAgent
from .vendor_parser import VendorParsingAgent
from .llm_client import (
    TextUnderstandingClient,
    CompletionResult,
    LLMProvider,
    openai_provider,
    anthropic_provider,
    strip_code_fences,
)
from .prompts import build_vendor_prompt, build_fallback_prompt
from .quality import assess_parse_quality

__all__ = [
    'VendorDetectionAgent',
    'VendorParsingAgent',
    'TextUnderstandingClient',
    'CompletionResult',
    'LLMProvider',
    'openai_provider',
    'anthropic_provider',
    'strip_code_fences',
    'build_vendor_prompt',
    'build_fallback_prompt',
    'assess_parse_quality',
]
