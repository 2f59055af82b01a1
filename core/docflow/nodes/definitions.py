"""
Shipped catalog of medical document nodes.

Single source of truth for which extraction tasks exist, which feature
flags trigger them, which tier they run in, and where their output lands.
The schemas themselves are looked up by ``schema_ref`` in the schema
library handed to ``build_document_catalog``.

Tiers:
    1  core sections (main report, diagnosis, patient, performer, signals)
    2  specialised clinical domains (ECG, imaging, medications, ...)
    3  procedures and departmental records
    4  hospital workflow (specimens, admission, dental)
    5  advanced analysis (oncology, pathology, social history, ...)
    10 post-processing over everything merged so far
"""

from collections.abc import Mapping
from typing import Any

from docflow.llm.provider import InferenceProvider
from docflow.nodes.catalog import NodeCatalog
from docflow.nodes.factory import NodeConfig, NodeFactory
from docflow.nodes.node import OutputMapping
from docflow.nodes.terms import MedicalTermsNode

MEDICAL_TERMS_NODE = "medical-terms-generation"


def _node(
    name: str,
    description: str,
    triggers: list[str],
    priority: int,
    target: str,
    unwrap: str | None = None,
    main: bool = False,
    schema_ref: str | None = None,
) -> NodeConfig:
    return NodeConfig(
        name=name,
        description=description,
        schema_ref=schema_ref if schema_ref is not None else name.removesuffix("-processing"),
        triggers=triggers,
        priority=priority,
        output_mapping=OutputMapping(target_field=target, unwrap_field=unwrap, is_main_report=main),
    )


DOCUMENT_NODE_CONFIGS: list[NodeConfig] = [
    # Core processing (tier 1)
    _node(
        "medical-analysis",
        "General medical content analysis and core sections",
        ["isMedical"],
        1,
        "medical-analysis",
        main=True,
        schema_ref="report.core",
    ),
    _node(
        "diagnosis-processing",
        "Medical diagnosis extraction and analysis",
        ["hasDiagnosis"],
        1,
        "diagnosis",
        unwrap="diagnosis",
    ),
    _node(
        "performer-processing",
        "Medical professional and healthcare provider analysis",
        ["isMedical"],
        1,
        "performer",
        unwrap="performer",
    ),
    _node(
        "patient-processing",
        "Patient information extraction and analysis",
        ["isMedical"],
        1,
        "patient",
        unwrap="patient",
    ),
    _node(
        "body-parts-processing",
        "Anatomical regions and body parts analysis",
        ["isMedical"],
        1,
        "bodyParts",
        unwrap="bodyParts",
    ),
    _node(
        "signal-processing",
        "Lab results and medical signals analysis (includes laboratory data)",
        ["hasSignals"],
        1,
        "signals",
        schema_ref="core.signals",
    ),
    # Specialised medical domains (tier 2)
    _node("ecg-processing", "ECG analysis", ["hasECG"], 2, "ecg"),
    _node("imaging-processing", "Medical imaging analysis", ["hasImaging"], 2, "imaging"),
    _node(
        "imaging-findings-processing",
        "Detailed radiology findings and measurements analysis",
        ["hasImagingFindings"],
        2,
        "imagingFindings",
    ),
    _node("echo-processing", "Echocardiogram cardiac ultrasound analysis", ["hasEcho"], 2, "echo"),
    _node(
        "allergies-processing",
        "Patient allergy and adverse reaction analysis",
        ["hasAllergies"],
        2,
        "allergies",
    ),
    _node(
        "medications-processing",
        "Unified medication and prescription analysis",
        ["hasPrescriptions", "hasMedications"],
        2,
        "medications",
    ),
    # Procedures and departmental records (tier 3)
    _node("procedures-processing", "Medical procedures analysis", ["hasProcedures"], 3, "procedures"),
    _node("anesthesia-processing", "Anesthesia records analysis", ["hasAnesthesia"], 3, "anesthesia"),
    _node(
        "microscopic-processing",
        "Histological and microscopic findings analysis",
        ["hasMicroscopic"],
        3,
        "microscopic",
    ),
    _node(
        "triage-processing",
        "Emergency department triage and acuity assessment",
        ["hasTriage"],
        3,
        "triage",
    ),
    _node(
        "immunization-processing",
        "Vaccination records and immunization compliance analysis",
        ["hasImmunizations"],
        3,
        "immunizations",
    ),
    # Hospital workflow (tier 4)
    _node(
        "specimens-processing",
        "Specimen collection and handling analysis",
        ["hasSpecimens"],
        4,
        "specimens",
    ),
    _node(
        "admission-processing",
        "Hospital admission and discharge analysis",
        ["hasAdmission"],
        4,
        "admission",
    ),
    _node("dental-processing", "Dental and oral health records analysis", ["hasDental"], 4, "dental"),
    # Advanced medical analysis (tier 5)
    _node(
        "tumor-characteristics-processing",
        "Tumor staging, grading, and cancer characteristics analysis",
        ["hasTumorCharacteristics"],
        5,
        "tumorCharacteristics",
    ),
    _node(
        "treatment-plan-processing",
        "Structured treatment plans including chemotherapy, radiation, surgery",
        ["hasTreatmentPlan"],
        5,
        "treatmentPlan",
    ),
    _node(
        "treatment-response-processing",
        "Treatment response assessment including RECIST criteria",
        ["hasTreatmentResponse"],
        5,
        "treatmentResponse",
    ),
    _node(
        "gross-findings-processing",
        "Gross pathological examination findings analysis",
        ["hasGrossFindings"],
        5,
        "grossFindings",
    ),
    _node(
        "special-stains-processing",
        "Special stains and immunohistochemistry results analysis",
        ["hasSpecialStains"],
        5,
        "specialStains",
    ),
    _node(
        "social-history-processing",
        "Social history and lifestyle factors analysis",
        ["hasSocialHistory"],
        5,
        "socialHistory",
    ),
    _node(
        "treatments-processing",
        "Treatment protocols and therapeutic interventions analysis",
        ["hasTreatments"],
        5,
        "treatments",
    ),
    _node(
        "assessment-processing",
        "Clinical assessment and specialist evaluation analysis",
        ["hasAssessment"],
        5,
        "assessment",
    ),
    _node(
        "molecular-processing",
        "Molecular, genetic, and biomarker analysis",
        ["hasMolecular"],
        5,
        "molecular",
    ),
    # Post-processing (tier 10)
    NodeConfig(
        name=MEDICAL_TERMS_NODE,
        description="Unified medical terms from all analysis results, for search",
        triggers=["isMedical"],
        priority=10,
        output_mapping=OutputMapping(target_field="medicalTerms"),
    ),
]


def document_feature_flags() -> list[str]:
    """Every flag some shipped node listens to, in catalog order."""
    return list(dict.fromkeys(flag for config in DOCUMENT_NODE_CONFIGS for flag in config.triggers))


def build_document_catalog(
    inference: InferenceProvider,
    schemas: Mapping[str, dict[str, Any]] | None = None,
    strict_target_fields: bool = False,
) -> NodeCatalog:
    """Create a fresh catalog holding every shipped node."""
    factory = NodeFactory(
        inference=inference,
        schemas=schemas,
        implementations={MEDICAL_TERMS_NODE: MedicalTermsNode()},
    )
    return NodeCatalog(
        factory.create_all(DOCUMENT_NODE_CONFIGS),
        strict_target_fields=strict_target_fields,
    )
