"""Execution pipeline for the agent runtime.

This package contains the core execution components:

- **cancellation**: Single-shot cancellation token shared by one run
- **permissions**: Permission broker (tool use -> allow / deny, human-gated)
- **engine**: Engine protocol and the claude-agent-sdk adapter
- **cleanup**: Removal of ephemeral engine scratch directories
- **coordinator**: Run orchestration (start -> stream -> finalize)
"""
