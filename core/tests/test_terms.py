"""Tests for the shipped document catalog and the search-term node."""

import pytest

from docflow.llm import MockInferenceProvider
from docflow.nodes import (
    DOCUMENT_NODE_CONFIGS,
    MedicalTermsNode,
    SharedState,
    build_document_catalog,
    document_feature_flags,
)
from docflow.nodes.definitions import MEDICAL_TERMS_NODE
from docflow.nodes.terms import MAX_TERM_LENGTH, collect_terms


def test_collect_terms_walks_nested_payloads():
    terms = set()
    collect_terms(
        {
            "diagnosis": [{"code": "I10", "name": "Hypertension"}],
            "medications": [{"medication": " Metoprolol ", "dose": "50 mg"}],
            "documentContext": {"name": "ignored"},
            "title": "",
            "notes": {"finding": "x" * (MAX_TERM_LENGTH + 1)},
        },
        terms,
    )
    assert terms == {"i10", "hypertension", "metoprolol"}


@pytest.mark.asyncio
async def test_terms_node_reads_merged_results():
    state = SharedState(
        results={
            "diagnosis-processing": {"diagnosis": [{"code": "E11", "name": "Diabetes"}]},
            "ecg-processing": {"rate": 70},
            MEDICAL_TERMS_NODE: {"terms": ["stale"]},
        }
    )
    result = await MedicalTermsNode().run(state)

    assert result.data == {"terms": ["diabetes", "e11"], "sourceNodes": ["diagnosis-processing"]}
    assert result.metadata.provider == "local"
    assert result.metadata.confidence == 1.0


@pytest.mark.asyncio
async def test_terms_node_without_terms_finds_nothing():
    result = await MedicalTermsNode().run(SharedState(results={"ecg-processing": {"rate": 70}}))
    assert result.data is None


def test_document_catalog_shape():
    catalog = build_document_catalog(MockInferenceProvider())

    assert len(catalog) == len(DOCUMENT_NODE_CONFIGS)
    assert catalog.main_report_node().name == "medical-analysis"
    assert catalog.target_conflicts() == {}
    assert {node.priority for node in catalog} == {1, 2, 3, 4, 5, 10}

    terms = catalog.get(MEDICAL_TERMS_NODE)
    assert terms.priority == 10
    assert terms.target_field == "medicalTerms"
    assert isinstance(terms.node, MedicalTermsNode)

    assert catalog.get("diagnosis-processing").output_mapping.unwrap_field == "diagnosis"
    assert [n.name for n in catalog.by_trigger("hasMedications")] == ["medications-processing"]


def test_document_feature_flags():
    flags = document_feature_flags()
    assert flags[0] == "isMedical"
    assert len(flags) == len(set(flags))
    assert {"hasECG", "hasSignals", "hasPrescriptions", "hasMedications"} <= set(flags)


def test_document_catalogs_are_independent():
    first = build_document_catalog(MockInferenceProvider())
    second = build_document_catalog(MockInferenceProvider())
    assert first.get("ecg-processing") is not second.get("ecg-processing")
