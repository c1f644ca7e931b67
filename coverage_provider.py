# coverage_provider.py
"""
FHIR Coverage resources, derived from the beneficiary enrollment data.

Coverages are not stored: each one is built on request from a Beneficiary, one
per Medicare segment. Their ids combine the segment's URL prefix with the
beneficiary id, e.g. `part-a-123`.
"""
import logging
import re
from typing import List, Optional, Tuple, Union

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

import coverage_transformer
from db_store import Beneficiary, BeneficiaryStore, NoResultError
from fhir_errors import FHIR_JSON, ArgumentError, ResourceNotFoundError
from fhir_models import Bundle, Coverage, IdType, ReferenceParam
from medicare_segment import MedicareSegment, select_by_url_prefix
from metrics import MetricRegistry
from paging import PagingArguments

log = logging.getLogger("coverage_provider")

# `\p{Alnum}+` in Unicode terms: letters or digits, no underscore.
COVERAGE_ID_PATTERN = re.compile(r"(.*)-([^\W_]+)")

BENE_BY_ID_TIMER = MetricRegistry.name("CoverageProvider", "query", "bene_by_id")


def parse_coverage_id(coverage_id_text: str) -> Optional[Tuple[MedicareSegment, str]]:
    """Split a composite Coverage id into (segment, beneficiary id), or None if it isn't one."""
    m = COVERAGE_ID_PATTERN.fullmatch(coverage_id_text)
    if not m:
        return None
    segment = select_by_url_prefix(m.group(1))
    if segment is None:
        return None
    return segment, m.group(2)


class CoverageResourceProvider:
    resource_type = "Coverage"

    def __init__(self, store: BeneficiaryStore, metrics: MetricRegistry):
        self.store = store
        self.metrics = metrics

    def read(self, coverage_id: Union[IdType, str, None]) -> Coverage:
        if coverage_id is None:
            raise ArgumentError("Coverage id is required")
        if isinstance(coverage_id, str):
            coverage_id = IdType.parse(coverage_id)
        if coverage_id.has_version_id_part():
            raise ArgumentError(f"Versioned reads are not supported: {coverage_id}")

        coverage_id_text = coverage_id.id_part
        if coverage_id_text is None or not coverage_id_text.strip():
            raise ArgumentError("Coverage id must not be blank")

        parsed = parse_coverage_id(coverage_id_text)
        if parsed is None:
            raise ResourceNotFoundError(coverage_id)
        segment, beneficiary_id = parsed

        try:
            beneficiary = self.find_beneficiary_by_id(beneficiary_id)
        except NoResultError:
            raise ResourceNotFoundError(IdType(id_part=beneficiary_id, resource_type=Beneficiary.__name__))

        return coverage_transformer.transform(self.metrics, segment, beneficiary)

    def search_by_beneficiary(self, beneficiary: ReferenceParam, paging_args: PagingArguments) -> Bundle:
        # Validate paging before touching the store.
        paging_requested = paging_args.is_paging_requested()

        coverages: List[Coverage]
        try:
            beneficiary_entity = self.find_beneficiary_by_id(beneficiary.id_part)
            coverages = coverage_transformer.transform_all(self.metrics, beneficiary_entity)
        except NoResultError:
            coverages = []

        bundle = Bundle()
        if paging_requested:
            page_size = paging_args.get_page_size()
            start_index = paging_args.get_start_index()
            num_to_return = max(0, min(page_size, len(coverages) - start_index))
            self._add_resources_to_bundle(bundle, coverages[start_index:start_index + num_to_return])
            # Everything fits on the first page: no navigation links.
            if not (start_index == 0 and page_size >= len(coverages)):
                paging_args.add_paging_links(bundle, "/Coverage?", "&beneficiary=", beneficiary.id_part, len(coverages))
        else:
            self._add_resources_to_bundle(bundle, coverages)

        bundle.total = len(coverages)
        return bundle

    def find_beneficiary_by_id(self, beneficiary_id: str) -> Beneficiary:
        """Raises NoResultError if no matching beneficiary exists."""
        with self.metrics.timer(BENE_BY_ID_TIMER):
            return self.store.find_beneficiary_by_id(beneficiary_id)

    @staticmethod
    def _add_resources_to_bundle(bundle: Bundle, coverages: List[Coverage]) -> Bundle:
        for coverage in coverages:
            bundle.add_entry(coverage)
        return bundle


# -----------------------
# HTTP surface

router = APIRouter()


def get_coverage_provider(request: Request) -> CoverageResourceProvider:
    return request.app.state.coverage_provider


def get_paging_arguments(request: Request) -> PagingArguments:
    return PagingArguments.from_request(request, request.app.state.fhir_base_path)


def _fhir_response(model) -> JSONResponse:
    return JSONResponse(model.model_dump(exclude_none=True), media_type=FHIR_JSON)


@router.get("/Coverage/{coverage_id}/_history/{version_id}", response_model=None)
def read_coverage_version(
    coverage_id: str,
    version_id: str,
    provider: CoverageResourceProvider = Depends(get_coverage_provider),
):
    return _fhir_response(provider.read(IdType(id_part=coverage_id, resource_type="Coverage", version_id_part=version_id)))


@router.get("/Coverage/{coverage_id}", response_model=None)
def read_coverage(coverage_id: str, provider: CoverageResourceProvider = Depends(get_coverage_provider)):
    return _fhir_response(provider.read(IdType(id_part=coverage_id, resource_type="Coverage")))


@router.get("/Coverage", response_model=None)
def search_coverage(
    beneficiary: str = Query(..., description="Patient reference, e.g. Patient/123 or 123"),
    provider: CoverageResourceProvider = Depends(get_coverage_provider),
    paging_args: PagingArguments = Depends(get_paging_arguments),
):
    bundle = provider.search_by_beneficiary(ReferenceParam(beneficiary), paging_args)
    log.debug("Coverage search for %s returned %d of %d", beneficiary, len(bundle.entry), bundle.total)
    return _fhir_response(bundle)
