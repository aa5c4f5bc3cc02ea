"""
Chat service: the contract the UI, HTTP server and CLI talk to.

One ``generate`` call:
    1. validates the request (no side effects on failure)
    2. reads prior context, then appends the user turn
    3. routes and dispatches to one provider
    4. on failure of a user-defined provider, retries once on the default
       provider with the same augmented prompt
    5. appends the assistant turn and returns the canonical result

A failed generation leaves the user turn in place and writes no assistant
turn, so the session can simply be resumed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from chatstudio.core.attachments import fold_attachments
from chatstudio.core.config import ChatSettings
from chatstudio.core.errors import GenerationFailedError, InvalidRequestError
from chatstudio.core.memory import MemoryManager
from chatstudio.core.registry import CatalogEntry, ProviderRegistry
from chatstudio.core.router import DispatchPlan, RequestRouter
from chatstudio.core.session_store import JsonlSessionStore, SessionStore
from chatstudio.models.provider import ProviderDescriptor
from chatstudio.models.request import CanonicalResult, GenerationRequest, ImageRequest
from chatstudio.models.session import Role, SessionHistory

logger = logging.getLogger(__name__)


class ChatService:
    """
    Composes memory, routing and normalization behind one contract.

    Args:
        memory: Session memory (owns the store handle)
        router: Provider router (owns the HTTP client)
        history_limit: How many prior turns are injected as context
    """

    def __init__(self, memory: MemoryManager, router: RequestRouter, history_limit: int = 10):
        self.memory = memory
        self.router = router
        self.history_limit = history_limit

    @classmethod
    def from_settings(
        cls,
        settings: ChatSettings,
        store: SessionStore | None = None,
        registry: ProviderRegistry | None = None,
        **router_kwargs,
    ) -> ChatService:
        """Build a service wired from settings."""
        if store is None:
            store = JsonlSessionStore(Path(settings.sessions_dir))
        if registry is None:
            registry = ProviderRegistry(default_id=settings.default_provider)
        router_kwargs.setdefault("timeout", settings.request_timeout)
        router_kwargs.setdefault("format_instructions", settings.format_instructions)
        router = RequestRouter(registry=registry, **router_kwargs)
        memory = MemoryManager(store, history_policy=settings.history_policy)
        return cls(memory, router, history_limit=settings.history_limit)

    def close(self) -> None:
        self.router.close()

    # ── Generation ────────────────────────────────────────────────────

    def _can_fall_back(self, plan: DispatchPlan) -> bool:
        return plan.provider.source != "builtin" and plan.provider.id != self.router.registry.default_id

    def _dispatch_with_fallback(self, plan: DispatchPlan, session_id: str | None) -> CanonicalResult:
        try:
            return self.router.dispatch(plan, session_id=session_id)
        except GenerationFailedError as e:
            if not self._can_fall_back(plan):
                raise
            logger.warning(
                "Provider %s failed (%s); falling back to %s",
                plan.provider.id,
                e,
                self.router.registry.default_id,
            )
            return self.router.dispatch(self.router.fallback_plan(plan), session_id=session_id)

    def generate(
        self,
        request: GenerationRequest,
        catalog: Iterable[CatalogEntry] = (),
    ) -> CanonicalResult:
        """
        Generate a reply with conversation memory.

        Raises:
            InvalidRequestError: Blank prompt
            MissingCredentialError: Chosen provider needs a key
            GenerationFailedError: Upstream failed (after the single fallback)
        """
        if not request.prompt or not request.prompt.strip():
            raise InvalidRequestError("Prompt is required")

        catalog = list(catalog)
        session_id = self.memory.open(request.session_id)
        prompt = fold_attachments(request.prompt, request.attachments)

        prior = self.memory.recent(session_id, self.history_limit)
        context = self.memory.format_for_injection(prior)

        # Validate routing (credentials) before anything is written
        plan = self.router.route(request.model_copy(update={"prompt": prompt}), catalog, context=context)

        self.memory.append(session_id, "user", request.prompt)
        result = self._dispatch_with_fallback(plan, session_id)
        self.memory.append(session_id, "assistant", result.content)

        return result.model_copy(
            update={
                "session_id": session_id,
                "memory_context": bool(prior),
                "files_processed": len(request.attachments),
            }
        )

    def generate_image(
        self,
        request: ImageRequest,
        catalog: Iterable[CatalogEntry] = (),
    ) -> CanonicalResult:
        """Generate an image. Image requests do not touch session memory."""
        catalog = list(catalog)
        plan = self.router.route_image(request, catalog)
        return self._dispatch_with_fallback(plan, None)

    # ── History ───────────────────────────────────────────────────────

    def get_history(self, session_id: str | None = None) -> SessionHistory:
        sid = self.memory.open(session_id)
        return SessionHistory(session_id=sid, turns=self.memory.all(sid))

    def clear_history(self, session_id: str | None = None) -> str:
        """Delete a session's turns. Returns the session id."""
        sid = self.memory.open(session_id)
        self.memory.clear(sid)
        return sid

    def save_turn(self, session_id: str | None, role: Role, content: str) -> str:
        """Append a turn written elsewhere (e.g. by a UI). Returns the session id."""
        if not content or not content.strip():
            raise InvalidRequestError("Message content is required")
        sid = self.memory.open(session_id)
        self.memory.append(sid, role, content)
        return sid

    # ── Providers ─────────────────────────────────────────────────────

    def list_providers(
        self,
        capability: str | None = None,
        catalog: Iterable[CatalogEntry] = (),
    ) -> list[ProviderDescriptor]:
        """All known providers with credentials stripped."""
        return [p.redacted() for p in self.router.registry.list(capability, catalog)]
