"""
Receipt Pipeline - Source Package.

This package contains the core modules of the receipt document-understanding
pipeline. Each module has a single responsibility and hands its result
forward to the next stage.

Modules:
    - input_handler: Image and PDF loading (first page only)
    - scanner: Edge detection, perspective correction, illumination and binarization
    - ocr_engine: Recognition adapter over pluggable OCR providers
    - parser: Rule-based heuristic receipt parsing
    - vendors: Vendor pattern registry
    - agents: Vendor detection, vendor-specific parsing, LLM client
    - fallback: Prioritized recovery strategies
    - orchestrator: Pipeline sequencing, budgets, caching and tracing
    - output_handler: JSON result output
    - models: Shared data classes

Architecture:
    Image → Scanner → Recognition → Vendor Detection → Vendor Parsing
                                                            ↓
                                   Result ← Fallback ← Quality Gate
"""

__version__ = "1.0.0"
__author__ = "ML Engineering Team"

__all__ = [
    'input_handler',
    'scanner',
    'ocr_engine',
    'parser',
    'vendors',
    'agents',
    'fallback',
    'orchestrator',
    'output_handler',
    'models',
    'utils'
]
