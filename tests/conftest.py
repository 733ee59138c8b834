import pytest


@pytest.fixture
def reference_patient():
    return {"calcium": 2.26, "bmi": 28.0, "tsh": 1.70, "age": 41, "magnesium": 0.79}


@pytest.fixture
def low_risk_patient():
    return {"calcium": 2.30, "bmi": 24.0, "tsh": 1.50, "age": 45, "magnesium": 0.80}


@pytest.fixture
def high_risk_patient():
    return {"calcium": 1.85, "bmi": 35.0, "tsh": 3.50, "age": 28, "magnesium": 0.62}


@pytest.fixture
def out_of_range_patient():
    return {"calcium": 9.0, "bmi": -4.0, "tsh": 250.0, "age": 3, "magnesium": 7.5}
