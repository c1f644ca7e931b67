# coverage_transformer.py
"""
Builds FHIR Coverage resources from a Beneficiary: one per Medicare segment.
"""
from typing import List

from db_store import Beneficiary
from fhir_models import (
    CodeableConcept,
    Coding,
    Coverage,
    CoverageGrouping,
    Extension,
    Reference,
)
from medicare_segment import MedicareSegment
from metrics import MetricRegistry

COVERAGE_PLAN = "Medicare"
COVERAGE_PLAN_PART_A = MedicareSegment.PART_A.display_plan
COVERAGE_PLAN_PART_B = MedicareSegment.PART_B.display_plan
COVERAGE_PLAN_PART_D = MedicareSegment.PART_D.display_plan

COVERAGE_TYPE_SYSTEM = "http://hl7.org/fhir/ValueSet/coverage-type"
CCW_CODING_SYSTEM_BASE = "https://bluebutton.cms.gov/resources/variables/"

TRANSFORM_TIMER = "CoverageTransformer.transform"

# Segment display order; search results and paging depend on it staying fixed.
SEGMENT_ORDER = (MedicareSegment.PART_A, MedicareSegment.PART_B, MedicareSegment.PART_D)

MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sept", "oct", "nov", "dec")


def build_coverage_id(segment: MedicareSegment, beneficiary) -> str:
    bene_id = beneficiary.beneficiary_id if isinstance(beneficiary, Beneficiary) else str(beneficiary)
    return f"{segment.url_prefix}-{bene_id}"


def build_patient_id(beneficiary) -> str:
    bene_id = beneficiary.beneficiary_id if isinstance(beneficiary, Beneficiary) else str(beneficiary)
    return f"Patient/{bene_id}"


def _ccw_extension(variable: str, code: str) -> Extension:
    url = CCW_CODING_SYSTEM_BASE + variable
    return Extension(url=url, valueCoding=Coding(system=url, code=code))


def _status_for(termination_code) -> str:
    if termination_code is not None and termination_code.strip() not in ("", "0"):
        return "cancelled"
    return "active"


def _enrollment_extensions(beneficiary: Beneficiary) -> List[Extension]:
    ext: List[Extension] = []
    pairs = (
        ("ms_cd", beneficiary.medicare_enrollment_status_code),
        ("orec", beneficiary.entitlement_code_original),
        ("crec", beneficiary.entitlement_code_current),
        ("esrd_ind", beneficiary.end_stage_renal_disease_code),
    )
    for variable, code in pairs:
        if code:
            ext.append(_ccw_extension(variable, code))
    return ext


def _new_coverage(segment: MedicareSegment, beneficiary: Beneficiary, status: str) -> Coverage:
    return Coverage(
        id=build_coverage_id(segment, beneficiary),
        status=status,
        type=CodeableConcept(coding=[Coding(system=COVERAGE_TYPE_SYSTEM, code=COVERAGE_PLAN)]),
        beneficiary=Reference(reference=build_patient_id(beneficiary)),
        grouping=CoverageGrouping(subGroup=COVERAGE_PLAN, subPlan=segment.display_plan),
    )


def _transform_part_a(beneficiary: Beneficiary) -> Coverage:
    coverage = _new_coverage(MedicareSegment.PART_A, beneficiary, _status_for(beneficiary.part_a_termination_code))
    coverage.extension.extend(_enrollment_extensions(beneficiary))
    if beneficiary.part_a_termination_code:
        coverage.extension.append(_ccw_extension("a_trm_cd", beneficiary.part_a_termination_code))
    return coverage


def _transform_part_b(beneficiary: Beneficiary) -> Coverage:
    coverage = _new_coverage(MedicareSegment.PART_B, beneficiary, _status_for(beneficiary.part_b_termination_code))
    coverage.extension.extend(_enrollment_extensions(beneficiary))
    if beneficiary.part_b_termination_code:
        coverage.extension.append(_ccw_extension("b_trm_cd", beneficiary.part_b_termination_code))
    return coverage


def _transform_part_d(beneficiary: Beneficiary) -> Coverage:
    coverage = _new_coverage(MedicareSegment.PART_D, beneficiary, "active")
    if beneficiary.medicare_enrollment_status_code:
        coverage.extension.append(_ccw_extension("ms_cd", beneficiary.medicare_enrollment_status_code))
    for month, contract_id in zip(MONTHS, beneficiary.part_d_contract_number_ids):
        if contract_id:
            coverage.extension.append(_ccw_extension(f"ptdcntrct{month}", contract_id))
    return coverage


_TRANSFORMERS = {
    MedicareSegment.PART_A: _transform_part_a,
    MedicareSegment.PART_B: _transform_part_b,
    MedicareSegment.PART_D: _transform_part_d,
}


def transform(metrics: MetricRegistry, segment: MedicareSegment, beneficiary: Beneficiary) -> Coverage:
    with metrics.timer(TRANSFORM_TIMER):
        return _TRANSFORMERS[segment](beneficiary)


def transform_all(metrics: MetricRegistry, beneficiary: Beneficiary) -> List[Coverage]:
    return [transform(metrics, segment, beneficiary) for segment in SEGMENT_ORDER]
