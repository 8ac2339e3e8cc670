from typing import Dict, List, Optional

import requests

from app.errors import InferenceError
from app.settings import settings


class InferenceClient:
    """OpenAI-compatible chat completions on the pod's llama server."""

    def __init__(self, base_url: Optional[str] = None, model: Optional[str] = None):
        self.base_url = (base_url or settings.LLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.INFERENCE_MODEL
        self.session = requests.Session()

    def chat(self, messages: List[Dict[str, str]], *, temperature: float) -> Dict:
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "stream": False,
        }
        r = self.session.post(f"{self.base_url}/v1/chat/completions", json=payload)
        if not r.ok:
            raise InferenceError(r.text or f"HTTP {r.status_code}")
        return r.json()
