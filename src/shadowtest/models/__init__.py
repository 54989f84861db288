"""Data models for shadowtest."""

from shadowtest.models.manifest import TestEnvManifest, default_manifest
from shadowtest.models.result import (
    BuildCheckResult,
    BuildError,
    CaseResult,
    CaseStatus,
    GeneratedTestBlock,
    GenerationFailure,
    RunOutcome,
    TestGenerationResult,
)
from shadowtest.models.target import AliasAssignment, TestTarget

__all__ = [
    "AliasAssignment",
    "BuildCheckResult",
    "BuildError",
    "CaseResult",
    "CaseStatus",
    "GeneratedTestBlock",
    "GenerationFailure",
    "RunOutcome",
    "TestEnvManifest",
    "TestGenerationResult",
    "TestTarget",
    "default_manifest",
]
