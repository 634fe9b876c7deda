"""
Mila - Prompt Logger.

Writes every LLM call (prompts + parsed response) to a markdown file so
inference decisions made during an interview can be replayed and audited.
Enabled via MILA_LOG_PROMPTS=1 or the --log-prompts CLI flag.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any

LOG_PROMPTS = os.getenv("MILA_LOG_PROMPTS", "0") == "1"
LOG_DIR = Path("prompt_logs")

_run_id: str | None = None
_call_counter: int = 0


def enable_prompt_logging(enabled: bool = True) -> None:
    """Enable or disable prompt logging."""
    global LOG_PROMPTS
    LOG_PROMPTS = enabled
    if enabled:
        LOG_DIR.mkdir(exist_ok=True)


def is_enabled() -> bool:
    return LOG_PROMPTS


def _run_dir() -> Path:
    """One directory per process run, named by start time."""
    global _run_id
    if _run_id is None:
        _run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = LOG_DIR / _run_id
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


def log_prompt(
    *,
    purpose: str,
    model: str,
    system_prompt: str,
    user_prompt: str,
    response_model: str,
    response: Any = None,
    error: str | None = None,
) -> Path | None:
    """
    Log a prompt and its response to a file.

    Args:
        purpose: What the call was for (e.g. "preference_inference")
        model: Model name
        system_prompt: The system message
        user_prompt: The user message
        response_model: Name of the pydantic model expected back
        response: The parsed response, if any
        error: Error text if the call failed

    Returns:
        Path to the log file, or None if logging is disabled
    """
    if not LOG_PROMPTS:
        return None

    global _call_counter
    _call_counter += 1

    filepath = _run_dir() / f"{_call_counter:03d}_{purpose}.md"

    content = f"""# LLM Call: {purpose}

**Time:** {datetime.now().isoformat()}
**Model:** {model}
**Response Model:** {response_model}

## System Prompt

```
{system_prompt}
```

## User Prompt

```
{user_prompt}
```

## Response

"""

    if error:
        content += f"**ERROR:** {error}\n"
    elif response is not None:
        payload = response.model_dump() if hasattr(response, "model_dump") else response
        content += f"```json\n{json.dumps(payload, indent=2, default=str)}\n```\n"
    else:
        content += "(No response)\n"

    filepath.write_text(content, encoding="utf-8")
    return filepath


def reset_run() -> None:
    """Start a fresh log directory (tests, new interview)."""
    global _run_id, _call_counter
    _run_id = None
    _call_counter = 0
