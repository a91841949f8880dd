import numpy as np
import pandas as pd
import pytest

from passenger_cv.Stage_1_Ingestion.Data_Schema import assign_row_ids, normalize_columns, validate_raw
from passenger_cv.Stage_2_Preprocessor.Missing_Imputer import MissingImputer
from passenger_cv.Stage_3_Feature_Engineering.Feature_Construction import FeatureDeriver
from passenger_cv.Stage_3_Feature_Engineering.Feature_Sanitizer import FeatureSanitizer
from passenger_cv.Stage_4_Split_data.Fold_Planner import FoldPlanner

SURNAMES = [
    "Moore", "Allison", "Andrews", "Baxter", "Carter", "Davies", "Evans", "Fortune",
    "Goldsmith", "Harris", "Ives", "Johnson", "Kelly", "Lindqvist", "Nilsson",
    "Olsen", "Palsson", "Quick", "Rice", "Sage",
]
GIVEN = ["John", "Mary", "William", "Anna", "Thomas", "Elizabeth", "James", "Helen"]
CABINS = ["C85", "B57 B59", "E12", "D33", "C123", "A6", "B96 B98", "E46", "C22 C26", "D10"]
CITIES = ["New York, NY", "London", "Montreal, PQ", "Paris, France"]


def make_passengers(n: int = 300, n_survivors: int = 90, seed: int = 0) -> pd.DataFrame:
    """
    Synthetic raw passenger table: ~10% missing age, ~2% missing fare,
    a fixed survivor count driven by sex and class, and a pure-noise column.
    """
    rng = np.random.default_rng(seed)
    pclass = rng.choice([1, 2, 3], size=n, p=[0.25, 0.25, 0.5])
    sex = rng.choice(["male", "female"], size=n, p=[0.62, 0.38])
    age = np.clip(rng.normal(30, 12, size=n), 1, 75).round(1)

    titles = np.where(
        sex == "female",
        np.where(age > 25, "Mrs", "Miss"),
        np.where(age < 14, "Master", "Mr"),
    ).astype(object)
    titles[rng.choice(n, size=4, replace=False)] = "Dr"
    surnames = rng.choice(SURNAMES, size=n)
    names = [f"{s}, {t}. {rng.choice(GIVEN)}" for s, t in zip(surnames, titles)]

    base_fare = np.select([pclass == 1, pclass == 2], [80.0, 25.0], 10.0)
    fare = (base_fare * rng.lognormal(0, 0.3, size=n)).round(2)

    cabin = np.array([rng.choice(CABINS) for _ in range(n)], dtype=object)
    cabin[rng.random(n) < 0.75] = None

    latent = 2.0 * (sex == "female") + 0.8 * (3 - pclass) + rng.normal(0, 0.5, size=n)
    survived = np.zeros(n, dtype=int)
    survived[np.argsort(-latent, kind="mergesort")[:n_survivors]] = 1

    embarked = rng.choice(["S", "C", "Q"], size=n, p=[0.7, 0.2, 0.1]).astype(object)
    embarked[rng.choice(n, size=2, replace=False)] = None

    home = np.array([rng.choice(CITIES) for _ in range(n)], dtype=object)
    home[rng.random(n) < 0.8] = None

    df = pd.DataFrame({
        "pclass": pclass,
        "survived": survived,
        "name": names,
        "sex": sex,
        "age": age,
        "sibsp": rng.choice([0, 1, 2], size=n, p=[0.7, 0.2, 0.1]),
        "parch": rng.choice([0, 1, 2], size=n, p=[0.75, 0.15, 0.1]),
        "ticket": [f"T{t}" for t in rng.integers(1000, 1200, size=n)],
        "fare": fare,
        "cabin": cabin,
        "embarked": embarked,
        "boat": np.where(survived == 1, "7", None),
        "body": np.where((survived == 0) & (rng.random(n) < 0.1), 100.0, np.nan),
        "home.dest": home,
        "noise": rng.normal(size=n),
    })
    df.loc[rng.choice(n, size=n // 10, replace=False), "age"] = np.nan
    df.loc[rng.choice(n, size=max(n // 50, 1), replace=False), "fare"] = np.nan
    return df


@pytest.fixture
def passenger_factory():
    return make_passengers


@pytest.fixture
def raw_passengers():
    return make_passengers()


@pytest.fixture
def ingested(raw_passengers):
    return assign_row_ids(validate_raw(normalize_columns(raw_passengers)))


@pytest.fixture
def imputed(ingested):
    return MissingImputer().fit_transform(ingested)


@pytest.fixture
def derived(imputed):
    return FeatureDeriver().fit_transform(imputed)


@pytest.fixture
def modeling_frame(derived):
    return FeatureSanitizer().transform(derived)


@pytest.fixture
def folds(modeling_frame):
    return FoldPlanner(k=5, seed=42).plan(modeling_frame)
