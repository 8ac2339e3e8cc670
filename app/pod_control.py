"""
RunPod pod control over the GraphQL API.
describe() / start() / stop() are the only three calls the controller needs.
"""

from typing import Dict, Optional

import requests

from app.errors import PodControlError
from app.settings import settings

POD_QUERY = """
query Pod($id: String!) {
  pod(input: { podId: $id }) {
    id
    desiredStatus
    runtime {
      uptimeInSeconds
      ports { privatePort publicPort ip }
    }
  }
}
"""

START_MUTATION = """
mutation Start($id: String!) {
  podResume(input: { podId: $id }) { id }
}
"""

STOP_MUTATION = """
mutation Stop($id: String!) {
  podStop(input: { podId: $id }) { id }
}
"""


class RunPodClient:
    def __init__(self, api_key: Optional[str] = None, pod_id: Optional[str] = None,
                 api_url: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.RUNPOD_API_KEY
        self.pod_id = pod_id if pod_id is not None else settings.RUNPOD_POD_ID
        self.api_url = api_url or settings.RUNPOD_API_URL
        self.session = requests.Session()

    def _request(self, query: str) -> Dict:
        if not self.api_key:
            raise PodControlError("Missing RUNPOD_API_KEY")
        if not self.pod_id:
            raise PodControlError("Missing RUNPOD_POD_ID")
        try:
            r = self.session.post(
                self.api_url,
                json={"query": query, "variables": {"id": self.pod_id}},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            body = r.json()
        except (requests.RequestException, ValueError) as e:
            raise PodControlError(f"RunPod request failed: {e}") from e
        if not isinstance(body, dict):
            raise PodControlError(f"RunPod returned unexpected body: {body!r}"[:500])
        if not r.ok or body.get("errors"):
            raise PodControlError(f"RunPod error: {body.get('errors') or body}")
        return body.get("data") or {}

    def describe(self) -> Dict:
        """
        Returns {"id", "desiredStatus", "runtime": {"uptimeInSeconds", "ports"}}.
        runtime is null while the pod is stopped.
        """
        return self._request(POD_QUERY).get("pod") or {}

    def start(self) -> Dict:
        return self._request(START_MUTATION)

    def stop(self) -> Dict:
        return self._request(STOP_MUTATION)
