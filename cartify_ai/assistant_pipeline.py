"""Shopping assistant request pipeline.

Role:
    Turns one authenticated chat request into one model call, optionally
    augmented with web search and store catalog evidence. Every invocation
    builds its own AssistantContext; nothing is shared between requests.

Pipeline data contract (fields filled as steps run):
    - caller: identity from the bearer credential (access_guard).
    - request: validated messages/model/temperature/web_search toggle.
    - query: newest user-authored text, drives both lookups.
    - turns: caller messages plus injected EvidenceTurns (web first, then catalog).
    - web_search / catalog: metadata for the response.
    - model_request / provider_payload / response: generation and assembly outputs.

Step contracts:
    access_guard: raises Unauthorized; nothing else runs.
    provider_config: raises MissingConfiguration when no model client is available.
    request_normalizer: raises InvalidInput.
    web_search / catalog_context: never raise for collaborator failures.
    generation: raises GenerationFailed.
    response_assembly: attaches __web_search and __catalog_context.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx

from .auth import CallerIdentity, require_authenticated_user
from .catalog_context import CatalogContextBuilder
from .config import Settings
from .context_injector import inject_evidence
from .errors import MissingConfiguration
from .gemini_client import GeminiClient
from .model_request import ModelRequest, build_model_request
from .models import CatalogContextMeta, NormalizedRequest, Turn, WebSearchMeta
from .pipeline_runtime import PipelineStep, StepRunner
from .request_normalizer import last_user_query, normalize_request
from .response_assembler import assemble_response
from .supabase_rest import SupabaseRestClient
from .web_search import FallbackSearchChain, build_default_chain, format_web_context

logger = logging.getLogger("cartify.pipeline")


class ModelClient(Protocol):
    def generate(self, request: ModelRequest) -> Dict[str, Any]:
        ...


@dataclass
class AssistantContext:
    """Mutable context passed through each pipeline step."""
    authorization: Optional[str]
    body: Any
    caller: Optional[CallerIdentity] = None
    request: Optional[NormalizedRequest] = None
    query: str = ""
    turns: List[Turn] = field(default_factory=list)
    web_search: WebSearchMeta = field(default_factory=lambda: WebSearchMeta(enabled=False))
    catalog: CatalogContextMeta = field(default_factory=CatalogContextMeta)
    model_request: Optional[ModelRequest] = None
    provider_payload: Any = None
    response: Dict[str, Any] = field(default_factory=dict)


class ShoppingAssistantPipeline:
    def __init__(
        self,
        settings: Settings,
        model_client: Optional[ModelClient],
        search_chain: Optional[FallbackSearchChain] = None,
        catalog_builder: Optional[CatalogContextBuilder] = None,
    ) -> None:
        """Purpose: Wire collaborators and register the ordered steps.
        Inputs/Outputs: Inputs are settings, the model client (None when unconfigured),
            and the optional search chain and catalog builder; no return value.
        Side Effects / State: Builds a StepRunner; holds no per-request state.
        Dependencies: Uses StepRunner/PipelineStep and the step methods below.
        Failure Modes: None at init; steps raise AssistantError subclasses.
        If Removed: The HTTP layer has nothing to run.
        Testing Notes: Inject fakes for every collaborator and drive handle().
        """
        # Store collaborators; web and catalog steps skip themselves when absent.
        self._settings = settings
        self._model_client = model_client
        self._search_chain = search_chain
        self._catalog_builder = catalog_builder
        self._runner: StepRunner[AssistantContext] = StepRunner(
            [
                PipelineStep("access_guard", self._step_access_guard),
                PipelineStep("provider_config", self._step_provider_config),
                PipelineStep("request_normalizer", self._step_normalize_request),
                PipelineStep("web_search", self._step_web_search, skip_if=self._skip_web_search),
                PipelineStep("catalog_context", self._step_catalog_context, skip_if=self._skip_catalog),
                PipelineStep("generation", self._step_generation),
                PipelineStep("response_assembly", self._step_response_assembly),
            ]
        )

    def handle(self, authorization: Optional[str], body: Any) -> Dict[str, Any]:
        """Purpose: Run the full pipeline for one request.
        Inputs/Outputs: Inputs are the Authorization header and decoded JSON body;
            output is the provider payload with metadata attached.
        Side Effects / State: Outbound search, data store, and model calls.
        Dependencies: Uses StepRunner.run.
        Failure Modes: AssistantError subclasses propagate to the HTTP layer.
        If Removed: Chat requests cannot be served.
        Testing Notes: Anonymous token -> Unauthorized and no collaborator is called.
        """
        context = AssistantContext(authorization=authorization, body=body)
        executed = self._runner.run(context)
        logger.info(
            "user=%s steps=%s web_used=%s catalog_used=%s",
            context.caller.user_id if context.caller else "-",
            ",".join(executed),
            context.web_search.used,
            context.catalog.used,
        )
        return context.response

    def _step_access_guard(self, context: AssistantContext) -> None:
        context.caller = require_authenticated_user(context.authorization)

    def _step_provider_config(self, context: AssistantContext) -> None:
        if self._model_client is None:
            raise MissingConfiguration("Missing GEMINI_API_KEY")

    def _step_normalize_request(self, context: AssistantContext) -> None:
        request = normalize_request(context.body, self._settings.default_model)
        context.request = request
        context.turns = list(request.messages)
        context.query = last_user_query(request.messages)
        context.web_search = WebSearchMeta(enabled=request.web_search_enabled)

    def _skip_web_search(self, context: AssistantContext) -> bool:
        return (
            self._search_chain is None
            or context.request is None
            or not context.request.web_search_enabled
            or not context.query
        )

    def _step_web_search(self, context: AssistantContext) -> None:
        """Purpose: Search the web for the latest user query and inject the results.
        Inputs/Outputs: Input is the context; updates turns and web_search metadata.
        Side Effects / State: Provider calls through the fallback chain.
        Dependencies: Uses FallbackSearchChain, format_web_context, inject_evidence.
        Failure Modes: Provider failures are absorbed by the chain; zero results leave
            turns unchanged.
        If Removed: Answers lose fresh web facts.
        Testing Notes: Primary empty + secondary two results -> provider "secondary".
        """
        outcome = self._search_chain.search(context.query)
        context.web_search = WebSearchMeta(
            enabled=True,
            used=bool(outcome.results),
            provider=outcome.provider if outcome.results else "none",
            results_count=len(outcome.results),
        )
        evidence = format_web_context(outcome.results, self._settings.evidence_max_chars)
        context.turns = inject_evidence(context.turns, evidence, source="web")

    def _skip_catalog(self, context: AssistantContext) -> bool:
        return self._catalog_builder is None or not context.query

    def _step_catalog_context(self, context: AssistantContext) -> None:
        """Purpose: Build catalog evidence for the latest user query and inject it.
        Inputs/Outputs: Input is the context; updates turns and catalog metadata.
        Side Effects / State: Read-only data store queries.
        Dependencies: Uses CatalogContextBuilder and inject_evidence.
        Failure Modes: Store failures degrade to no evidence inside the builder.
        If Removed: Product questions are answered without live store data.
        Testing Notes: Injected after web evidence, both before the newest turn.
        """
        catalog = self._catalog_builder.build(context.query)
        context.catalog = CatalogContextMeta(
            used=catalog.used,
            candidates_count=len(catalog.candidates),
            matched_categories=[category.name for category in catalog.matched_categories],
        )
        context.turns = inject_evidence(context.turns, catalog.text, source="catalog")

    def _step_generation(self, context: AssistantContext) -> None:
        request = context.request
        context.model_request = build_model_request(context.turns, request.model, request.temperature)
        context.provider_payload = self._model_client.generate(context.model_request)

    def _step_response_assembly(self, context: AssistantContext) -> None:
        context.response = assemble_response(context.provider_payload, context.web_search, context.catalog)


def build_pipeline(settings: Settings, http: httpx.Client) -> ShoppingAssistantPipeline:
    """Purpose: Construct a pipeline with production collaborators for one request.
    Inputs/Outputs: Inputs are settings and a request-scoped httpx.Client; output is
        a ShoppingAssistantPipeline.
    Side Effects / State: Configures the Gemini SDK when a key is present.
    Dependencies: Uses GeminiClient, build_default_chain, SupabaseRestClient,
        CatalogContextBuilder.
    Failure Modes: None; missing configuration surfaces when the pipeline runs.
    If Removed: The HTTP layer would need to wire collaborators itself.
    Testing Notes: With no SUPABASE_URL the pipeline has no catalog builder.
    """
    model_client = GeminiClient(settings.gemini_api_key) if settings.gemini_api_key else None
    search_chain = build_default_chain(http, settings.brave_search_api_key, settings.web_search_max_results)
    catalog_builder = None
    if settings.catalog_enabled:
        store = SupabaseRestClient(http, settings.supabase_url, settings.supabase_service_role_key)
        catalog_builder = CatalogContextBuilder(
            store,
            link_base=settings.product_link_base,
            category_sort=settings.category_sort,
            max_chars=settings.evidence_max_chars,
        )
    return ShoppingAssistantPipeline(settings, model_client, search_chain, catalog_builder)
