"""
Unit tests for the feature catalog: lookup, clamping and input coercion.
"""
import pytest

from feature_catalog import (
    FEATS, REFERENCE_PATIENT, clamp, clamp_vector, get_catalog, get_feature_spec, prepare_vector,
)


class TestFeatureSpec:

    def test_catalog_order(self):
        assert FEATS == ("calcium", "bmi", "tsh", "age", "magnesium")

    def test_calcium_spec(self):
        spec = get_feature_spec("calcium")
        assert spec.min == 1.5
        assert spec.max == 3.0
        assert spec.step == 0.01
        assert spec.rank == 1
        assert spec.unit == "mmol/L"
        assert spec.critical == {"baseline": 1.93, "balanced": 2.13}
        assert spec.optimal["balanced"] == (2.16, 2.41)

    def test_display_ranks_are_a_permutation(self):
        ranks = sorted(get_feature_spec(f).rank for f in FEATS)
        assert ranks == [1, 2, 3, 4, 5]

    def test_unknown_feature_raises(self):
        with pytest.raises(ValueError, match="Unknown feature"):
            get_feature_spec("potassium")

    def test_catalog_serializes_every_feature(self):
        catalog = get_catalog()
        assert list(catalog) == list(FEATS)
        assert catalog["age"]["max"] == 80.0


class TestClamping:

    def test_clamp_scalar(self):
        assert clamp("age", 5) == 18.0
        assert clamp("age", 120) == 80.0
        assert clamp("age", 40) == 40

    def test_clamp_vector(self, out_of_range_patient):
        x = clamp_vector(out_of_range_patient)
        assert x == {"calcium": 3.0, "bmi": 15.0, "tsh": 10.0, "age": 18.0, "magnesium": 1.2}

    def test_clamp_vector_keeps_in_range_values(self, reference_patient):
        assert clamp_vector(reference_patient) == pytest.approx(reference_patient)


class TestPrepareVector:

    def test_numeric_strings_are_parsed(self):
        x = prepare_vector({"calcium": "2.30", "age": "45"})
        assert x["calcium"] == pytest.approx(2.30)
        assert x["age"] == pytest.approx(45.0)

    def test_missing_and_garbage_fall_back_to_reference(self):
        x = prepare_vector({"calcium": "n/a", "bmi": None, "tsh": float("inf")})
        assert x["calcium"] == REFERENCE_PATIENT["calcium"]
        assert x["bmi"] == REFERENCE_PATIENT["bmi"]
        assert x["tsh"] == REFERENCE_PATIENT["tsh"]
        assert x["age"] == REFERENCE_PATIENT["age"]

    def test_empty_input_is_reference_patient(self):
        assert prepare_vector(None) == REFERENCE_PATIENT

    def test_out_of_range_values_are_not_clamped(self):
        assert prepare_vector({"calcium": 5.0})["calcium"] == 5.0

    def test_unknown_keys_are_ignored(self):
        x = prepare_vector({"potassium": 4.2})
        assert set(x) == set(FEATS)
