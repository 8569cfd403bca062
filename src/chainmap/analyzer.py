"""Single-address analysis: account/contract split, template resolution,
proxy and source lookup, field extraction and relative derivation."""

from __future__ import annotations

from collections.abc import Collection, Iterable
from typing import Any

from chainmap.address import normalize_address, normalize_all
from chainmap.analysis import (
    IMMUTABLE,
    AccountAnalysis,
    Analysis,
    ContractAnalysis,
    ExtendedTemplate,
    TemplateReason,
)
from chainmap.errors import TEMPLATE_ERROR_KEY
from chainmap.logging_config import get_logger
from chainmap.overrides import ContractOverrides
from chainmap.providers import (
    ChainReader,
    FieldExtractor,
    ProxyResolver,
    SourceRegistry,
    TemplateLibrary,
)
from chainmap.relatives import relatives_with_suggested_templates

logger = get_logger("analyzer")


def order_candidates(candidates: Iterable[str]) -> list[str]:
    """Deduplicated template names in resolution order (lexicographic).

    Suggestion sets and shape matches carry no ordering of their own, so
    the first name in this order is the one applied.
    """
    return sorted(set(candidates))


class AddressAnalyzer:
    """Analyze one address at one block into an Account or Contract record.

    The analyzer holds no mutable state; concurrent ``analyze`` calls for
    different addresses are independent.
    """

    def __init__(
        self,
        chain: ChainReader,
        proxies: ProxyResolver,
        sources: SourceRegistry,
        extractor: FieldExtractor,
        templates: TemplateLibrary,
    ):
        self.chain = chain
        self.proxies = proxies
        self.sources = sources
        self.extractor = extractor
        self.templates = templates

    async def analyze(
        self,
        address: str,
        overrides: ContractOverrides | None,
        block_number: int,
        suggested_templates: Collection[str] | None = None,
        *,
        log: Any = None,
    ) -> Analysis:
        """Analyze ``address`` at ``block_number``.

        Template resolution follows a strict priority and only one path
        ever fires: ``overrides.extends`` first, then templates suggested
        by a referrer, then shape matching. Conflicting candidates are
        recorded under ``errors["@template"]`` and the first candidate in
        lexicographic order is still applied.

        Collaborator failures propagate; per-field extraction failures end
        up in the record's ``errors``.
        """
        address = normalize_address(address)
        if log is None:
            log = logger
        log = log.bind(address=address)

        code = await self.chain.code_at(address, block_number)
        if len(code) == 0:
            log.debug("no code, recording account")
            return AccountAnalysis(address=address)

        deployment = await self.chain.deployment_info(address)

        effective = overrides
        extended: ExtendedTemplate | None = None
        template_errors: dict[str, str] = {}

        if overrides is not None and overrides.extends is not None:
            effective = self.templates.apply_template(
                overrides, overrides.extends
            )
            extended = ExtendedTemplate(
                overrides.extends, TemplateReason.EXPLICIT_OVERRIDE
            )
        elif suggested_templates:
            candidates = order_candidates(suggested_templates)
            # applied even when conflicting so the referrer's intent holds
            effective = self.templates.apply_template(
                overrides or ContractOverrides(), candidates[0]
            )
            extended = ExtendedTemplate(
                candidates[0], TemplateReason.REFERRER_SUGGESTED
            )
            if len(candidates) > 1:
                template_errors[TEMPLATE_ERROR_KEY] = (
                    "Multiple templates suggested "
                    f"({', '.join(candidates)})"
                )

        proxy = await self.proxies.detect_proxy(
            address,
            block_number,
            effective.proxy_type if effective is not None else None,
        )
        implementations = (
            normalize_all(proxy.implementations) if proxy is not None else []
        )
        proxy_relatives = (
            normalize_all(proxy.relatives) if proxy is not None else []
        )

        sources = await self.sources.sources(address, implementations)
        log = log.bind(name=sources.name)

        if extended is None:
            matches = order_candidates(self.templates.match_by_shape(sources))
            if matches:
                effective = self.templates.apply_template(
                    overrides or ContractOverrides(), matches[0]
                )
                extended = ExtendedTemplate(
                    matches[0], TemplateReason.SHAPE_MATCHED
                )
            if len(matches) > 1:
                template_errors[TEMPLATE_ERROR_KEY] = (
                    f"Multiple shapes matched ({', '.join(matches)})"
                )

        if extended is not None:
            log.debug(
                "template resolved",
                template=extended.template,
                reason=extended.reason.value,
            )
        if TEMPLATE_ERROR_KEY in template_errors:
            log.warning(
                "template conflict", detail=template_errors[TEMPLATE_ERROR_KEY]
            )

        extraction = await self.extractor.execute(
            address, sources.abi, effective, block_number
        )

        relatives = relatives_with_suggested_templates(
            extraction.results,
            effective,
            proxy_relatives=proxy_relatives,
            implementations=implementations,
        )

        override_name = effective.name if effective is not None else None
        log.info(
            "contract analyzed",
            implementations=len(implementations),
            relatives=len(relatives),
            errors=len(template_errors) + len(extraction.errors),
        )

        return ContractAnalysis(
            address=address,
            name=override_name or sources.name,
            derived_name=sources.name if override_name else None,
            is_verified=sources.is_verified,
            deployment_timestamp=(
                deployment.timestamp if deployment is not None else None
            ),
            deployment_block_number=(
                deployment.block_number if deployment is not None else None
            ),
            upgradeability=(
                proxy.upgradeability if proxy is not None else IMMUTABLE
            ),
            implementations=tuple(implementations),
            values=dict(extraction.values),
            errors={**template_errors, **extraction.errors},
            abis={
                normalize_address(addr): list(entries)
                for addr, entries in sources.abis.items()
            },
            source_bundles=tuple(sources.source_bundles),
            extended_template=extended,
            ignore_in_watch_mode=(
                tuple(effective.ignore_in_watch_mode)
                if effective is not None
                else ()
            ),
            relatives=relatives,
        )
