"""
Excalidraw Agent - resolve, inspect and rewrite Excalidraw diagrams from code.

This library lets an automated agent work with diagrams it did not create,
without rendering them: share links are resolved and decrypted, diagrams are
summarized for context and validation, and natural-language change requests
are turned into element-level diffs by an LLM and applied safely.

Example:
    from excalidraw_agent import (
        AgentToolkitConfig,
        DiagramModifier,
        ExcalidrawPublisher,
        HttpTransport,
        ShareLinkResolver,
        create_generator,
        modify_from_share_link,
    )

    config = AgentToolkitConfig.from_env()
    async with HttpTransport() as transport:
        result = await modify_from_share_link(
            "https://excalidraw.com/#json=abc,def",
            "Add a cache between the API and the database",
            resolver=ShareLinkResolver(transport, config),
            modifier=DiagramModifier(create_generator(config), config.retry),
            publisher=ExcalidrawPublisher(transport, config),
        )
    print(result.share_link.url)
"""

from excalidraw_agent.cancellation import cancellable_sleep, run_cancellable
from excalidraw_agent.config import AgentToolkitConfig
from excalidraw_agent.crypto import decrypt, encrypt, generate_key, import_key
from excalidraw_agent.diff import apply_diff, parse_diff, validate_elements
from excalidraw_agent.errors import (
    CryptoError,
    DiffIssue,
    DuplicateIdError,
    ExcalidrawAgentError,
    GeneratorError,
    GeneratorNetworkError,
    GeneratorRequestError,
    GeneratorTimeoutError,
    GeneratorValidationError,
    InvalidDiagramError,
    InvalidDiffError,
    KeyFormatError,
    OperationCancelledError,
    OperationTimeoutError,
    OutputRepairError,
    PublishError,
    ResolveError,
    RetryExhaustedError,
    SharePayloadError,
)
from excalidraw_agent.generators import (
    GenerationResult,
    Generator,
    GeneratorRegistry,
    TokenUsage,
    create_generator,
)
from excalidraw_agent.http import HttpTransport
from excalidraw_agent.logging import get_logger, setup_logging
from excalidraw_agent.models import (
    BoundingBox,
    ChangeSet,
    Diagram,
    DiagramSummary,
    Element,
    ElementChange,
    ModificationDiff,
    ShareLinkReference,
)
from excalidraw_agent.modifier import (
    MODIFICATION_SYSTEM_PROMPT,
    DiagramModifier,
    ModificationResult,
    simplify_for_agent,
)
from excalidraw_agent.pipeline import ShareLinkModification, modify_from_share_link
from excalidraw_agent.publisher import ExcalidrawPublisher, Publisher, ShareServicePublisher
from excalidraw_agent.resolver import (
    ResolvedDiagram,
    ShareLinkResolver,
    extract_share_link,
    is_json_share_url,
    read_diagram_file,
)
from excalidraw_agent.retry import (
    RetryPolicy,
    generate_object_with_retry,
    generate_text_with_retry,
    with_retry,
)
from excalidraw_agent.share_payload import decode_share_payload, encode_share_payload
from excalidraw_agent.summarize import format_summary, summarize_diagram, summarize_elements
from excalidraw_agent.utils.json_repair import parse_structured_output, repair_structural_closure

__version__ = "0.1.0"

__all__ = [
    # Models
    "Element",
    "Diagram",
    "BoundingBox",
    "ShareLinkReference",
    "DiagramSummary",
    "ModificationDiff",
    "ElementChange",
    "ChangeSet",
    # Config
    "AgentToolkitConfig",
    # Crypto
    "encrypt",
    "decrypt",
    "import_key",
    "generate_key",
    "decode_share_payload",
    "encode_share_payload",
    # Resolution
    "ShareLinkResolver",
    "ResolvedDiagram",
    "extract_share_link",
    "is_json_share_url",
    "read_diagram_file",
    # Summaries
    "summarize_elements",
    "summarize_diagram",
    "format_summary",
    # Retry and cancellation
    "RetryPolicy",
    "with_retry",
    "generate_text_with_retry",
    "generate_object_with_retry",
    "run_cancellable",
    "cancellable_sleep",
    # Output repair
    "repair_structural_closure",
    "parse_structured_output",
    # Modification
    "DiagramModifier",
    "ModificationResult",
    "MODIFICATION_SYSTEM_PROMPT",
    "simplify_for_agent",
    "parse_diff",
    "apply_diff",
    "validate_elements",
    # Publishing
    "Publisher",
    "ShareServicePublisher",
    "ExcalidrawPublisher",
    # Pipeline
    "modify_from_share_link",
    "ShareLinkModification",
    # Generators
    "Generator",
    "GenerationResult",
    "GeneratorRegistry",
    "TokenUsage",
    "create_generator",
    # Transport
    "HttpTransport",
    # Logging
    "setup_logging",
    "get_logger",
    # Errors
    "ExcalidrawAgentError",
    "CryptoError",
    "KeyFormatError",
    "ResolveError",
    "SharePayloadError",
    "InvalidDiagramError",
    "OperationTimeoutError",
    "OperationCancelledError",
    "RetryExhaustedError",
    "DiffIssue",
    "InvalidDiffError",
    "DuplicateIdError",
    "OutputRepairError",
    "GeneratorError",
    "GeneratorTimeoutError",
    "GeneratorNetworkError",
    "GeneratorRequestError",
    "GeneratorValidationError",
    "PublishError",
]
