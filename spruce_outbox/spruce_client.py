"""Spruce Health API client used to deliver outbox messages."""
import time
from datetime import datetime
from typing import Optional, Dict, Any, List
import requests

from spruce_outbox import settings
from spruce_outbox.logging_conf import logger
from spruce_outbox.queue.models import DeliveryResult


class SpruceAPIError(Exception):
    """Raised when the Spruce API rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SpruceClient:
    """Talks to the Spruce Health REST API with rate limiting and retries."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[int] = None,
    ):
        self.token = token if token is not None else (settings.SPRUCE_API_TOKEN or "")
        self.base_url = (base_url or settings.SPRUCE_API_BASE_URL).rstrip("/")
        self.max_retries = max_retries if max_retries is not None else settings.SPRUCE_MAX_RETRIES
        self.retry_delay = retry_delay if retry_delay is not None else settings.SPRUCE_RETRY_DELAY
        self.timeout = timeout or settings.SPRUCE_TIMEOUT

        self.rate_limit_remaining = 60
        self.rate_limit_reset = datetime.now()

        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": self._auth_header(self.token),
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "SpruceHealthClient/1.0",
        })

    @staticmethod
    def _auth_header(token: str) -> str:
        # API keys (aid_..., or their base64 form YWlk...) use Basic auth
        if token.startswith("YWlk") or token.startswith("aid_"):
            return f"Basic {token}"
        return f"Bearer {token}"

    def send(self, target_id: str, content: str) -> DeliveryResult:
        """Deliver one outbox message. API failures come back as a failed result."""
        try:
            response = self.send_message(target_id, content)
        except SpruceAPIError as e:
            logger.error(f"Failed to send message to conversation {target_id}: {e}")
            return DeliveryResult.failed(str(e))

        message_id = None
        if isinstance(response, dict):
            message_id = response.get("id") or (response.get("message") or {}).get("id")
        return DeliveryResult.ok(message_id)

    def send_message(self, conversation_id: str, content: str, message_type: str = "text") -> Dict[str, Any]:
        """
        Post a message to a conversation.

        Tries the conversation messages endpoint first and falls back to the
        top-level messages endpoint, which some Spruce API versions expect.

        Raises:
            SpruceAPIError if both endpoints fail
        """
        payload = {"body": content, "type": message_type}
        try:
            response = self._request("POST", f"/conversations/{conversation_id}/messages", json=payload)
            logger.info(f"Message sent to conversation {conversation_id}")
            return response
        except SpruceAPIError as direct_error:
            logger.warning(
                f"Conversation messages endpoint failed for {conversation_id}: {direct_error}. "
                "Trying messages endpoint"
            )

        alt_payload = {
            "content": content,
            "message_type": message_type,
            "conversation_id": conversation_id,
        }
        response = self._request("POST", "/messages", json=alt_payload)
        logger.info(f"Message sent to conversation {conversation_id} via messages endpoint")
        return response

    def get_conversations(self, page: int = 1, per_page: int = 20, **params) -> Dict[str, Any]:
        """List conversations, most recently active first."""
        query = {
            "orderBy": "lastMessageAt",
            "orderDirection": "desc",
            "perPage": per_page,
            "page": page,
            **params,
        }
        return self._request("GET", "/conversations", params=query)

    def get_conversation(self, conversation_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/conversations/{conversation_id}")

    def get_messages(self, conversation_id: str, per_page: int = 50) -> List[Dict[str, Any]]:
        """
        Fetch the messages of a conversation.

        Args:
            conversation_id: Spruce conversation ID
            per_page: Maximum number of items to fetch

        Returns:
            List of message dicts, empty if neither endpoint answers
        """
        try:
            data = self._request("GET", f"/conversations/{conversation_id}/items", params={"limit": per_page})
            return data.get("conversationItems") or data.get("items") or []
        except SpruceAPIError as e:
            logger.debug(f"Items endpoint failed for {conversation_id}: {e}")

        try:
            data = self._request(
                "GET",
                f"/conversations/{conversation_id}/messages",
                params={"page": 1, "per_page": per_page, "include": "all"},
            )
        except SpruceAPIError as e:
            logger.error(f"Failed to fetch messages for {conversation_id}: {e}")
            return []

        if isinstance(data, list):
            return data
        return data.get("messages") or data.get("data") or []

    def search_conversations(self, query: str) -> List[Dict[str, Any]]:
        """Match conversations by title or external participant name/contact."""
        lower_query = query.lower()
        conversations = self.get_conversations().get("conversations", [])

        matches = []
        for conversation in conversations:
            if lower_query in (conversation.get("title") or "").lower():
                matches.append(conversation)
                continue
            for participant in conversation.get("externalParticipants") or []:
                name = (participant.get("displayName") or "").lower()
                contact = (participant.get("contact") or "").lower()
                if lower_query in name or lower_query in contact:
                    matches.append(conversation)
                    break
        return matches

    def mark_messages_as_read(self, conversation_id: str, message_ids: List[str]) -> None:
        self._request("PATCH", f"/conversations/{conversation_id}/messages/read", json={"message_ids": message_ids})

    def get_rate_limit_status(self) -> Dict[str, Any]:
        return {"remaining": self.rate_limit_remaining, "reset_time": self.rate_limit_reset}

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        retry_count: int = 0,
    ) -> Any:
        """Make API request with rate limiting and retry logic."""
        url = f"{self.base_url}{endpoint}"
        self._wait_for_rate_limit()

        try:
            response = self.session.request(method=method, url=url, params=params, json=json, timeout=self.timeout)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            if retry_count < self.max_retries:
                wait_time = self.retry_delay * 2 ** retry_count
                logger.warning(f"Network error on {method} {endpoint}. Retrying in {wait_time}s...")
                time.sleep(wait_time)
                return self._request(method, endpoint, params, json, retry_count + 1)
            raise SpruceAPIError(f"Network Error: {e}") from e
        except requests.exceptions.RequestException as e:
            raise SpruceAPIError(f"Network Error: {e}") from e

        self._update_rate_limit(response)

        if response.status_code == 429:
            retry_after = self._retry_after(response)
            logger.warning(f"Rate limited. Waiting {retry_after}s...")
            time.sleep(retry_after)
            return self._request(method, endpoint, params, json, retry_count)

        if response.status_code >= 500 and retry_count < self.max_retries:
            wait_time = self.retry_delay * 2 ** retry_count
            logger.warning(f"Server error {response.status_code}. Retrying in {wait_time}s...")
            time.sleep(wait_time)
            return self._request(method, endpoint, params, json, retry_count + 1)

        if response.status_code >= 400:
            raise SpruceAPIError(
                f"Spruce API Error ({response.status_code}): {self._error_message(response)}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            # Accepted but not JSON; the request itself succeeded
            logger.warning(f"Non-JSON response from {method} {endpoint} (status {response.status_code})")
            return {}

    @staticmethod
    def _retry_after(response: requests.Response) -> int:
        # Retry-After may also be an HTTP date; wait the default then
        try:
            return int(response.headers.get("Retry-After", 60))
        except ValueError:
            return 60

    def _wait_for_rate_limit(self) -> None:
        if self.rate_limit_remaining <= 1 and datetime.now() < self.rate_limit_reset:
            wait_time = (self.rate_limit_reset - datetime.now()).total_seconds()
            logger.warning(f"Rate limit nearly exhausted. Waiting {wait_time:.1f}s.")
            time.sleep(max(0.0, wait_time))

    def _update_rate_limit(self, response: requests.Response) -> None:
        remaining = response.headers.get("X-RateLimit-Remaining")
        reset = response.headers.get("X-RateLimit-Reset")
        try:
            if remaining is not None:
                self.rate_limit_remaining = int(remaining)
            if reset is not None:
                self.rate_limit_reset = datetime.fromtimestamp(int(reset))
        except ValueError:
            logger.debug(f"Ignoring malformed rate limit headers: {remaining!r}, {reset!r}")

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or "Unknown error"
        if isinstance(data, dict):
            return data.get("message") or data.get("error") or "Unknown error"
        return "Unknown error"
