from typing import Dict, List, Optional

MEMORY_HEADER = "User memory (high priority, factual preferences only):"


def build_messages(
    *,
    system_prompt: Optional[str],
    memory: Optional[str],
    history: List[Dict[str, str]],
    user_text: str,
) -> List[Dict[str, str]]:
    msgs: List[Dict[str, str]] = []
    if system_prompt:
        msgs.append({"role": "system", "content": system_prompt})
    if memory and memory.strip():
        msgs.append({"role": "system", "content": f"{MEMORY_HEADER}\n{memory.strip()}"})
    msgs.extend(history or [])
    msgs.append({"role": "user", "content": user_text})
    return msgs
