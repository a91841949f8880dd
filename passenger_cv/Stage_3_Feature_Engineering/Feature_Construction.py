import logging
from typing import List

import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin

from passenger_cv.config import MISSING_LEVEL, OTHER_LEVEL, ROW_ID_COLUMN
from passenger_cv.exceptions import MalformedRecordError

log = logging.getLogger("passenger_cv.stage3")

DERIVED_COLUMNS: List[str] = [
    "cabin_deck", "cabin_prefix_2", "cabin_count",
    "surname", "title", "surname_count",
    "family_size", "ticket_count",
]


def _row_ids(df: pd.DataFrame, mask: pd.Series) -> List:
    ids = df[ROW_ID_COLUMN] if ROW_ID_COLUMN in df.columns else df.index.to_series()
    return ids[mask].tolist()


def parse_surnames(df: pd.DataFrame) -> pd.Series:
    """Text before the first comma of `name`."""
    names = df["name"].astype(str)
    bad = ~names.str.contains(",", regex=False) | df["name"].isna()
    if bad.any():
        raise MalformedRecordError(
            f"{int(bad.sum())} name(s) without a comma; cannot extract surname.",
            column="name", row_ids=_row_ids(df, bad))
    return names.str.split(",", n=1).str[0].str.strip()


def parse_titles(df: pd.DataFrame) -> pd.Series:
    """Courtesy title: text between the first comma and the following period."""
    names = df["name"].astype(str)
    no_comma = ~names.str.contains(",", regex=False) | df["name"].isna()
    after = names.str.split(",", n=1).str[1].fillna("")
    no_period = ~after.str.contains(".", regex=False)
    title = after.str.split(".", n=1).str[0].str.strip()
    bad = no_comma | no_period | (title == "")
    if bad.any():
        raise MalformedRecordError(
            f"{int(bad.sum())} name(s) without a 'Surname, Title.' pattern.",
            column="name", row_ids=_row_ids(df, bad))
    return title


class FeatureDeriver(BaseEstimator, TransformerMixin):
    """
    Deterministic passenger features, appended to a copy of the imputed frame:

      cabin_deck      first cabin character, or the missing sentinel
      cabin_prefix_2  first two cabin characters, or the catch-all level
      cabin_count     number of space delimiters (multi-cabin bookings)
      surname         text before the first comma of the name
      title           text between that comma and the next period
      surname_count   rows sharing the surname (one grouped pass)
      family_size     sibsp + parch + 1
      ticket_count    rows sharing the ticket (one grouped pass)

    Derived columns are always recomputed from the raw fields, so running
    the deriver on its own output gives the same columns again.
    """

    def __init__(self, missing_level: str = MISSING_LEVEL, other_level: str = OTHER_LEVEL):
        self.missing_level = missing_level
        self.other_level = other_level

    def fit(self, X: pd.DataFrame, y=None):
        return self

    def _cabin_features(self, df: pd.DataFrame) -> None:
        cabin = df["cabin"]
        bad = cabin.isna() | (cabin.astype(str).str.strip() == "")
        if bad.any():
            raise MalformedRecordError(
                f"{int(bad.sum())} empty cabin value(s); impute cabin before deriving features.",
                column="cabin", row_ids=_row_ids(df, bad))

        cabin = cabin.astype(str).str.strip()
        is_missing = cabin == self.missing_level
        df["cabin_deck"] = cabin.str[0].where(~is_missing, self.missing_level)
        df["cabin_prefix_2"] = cabin.str[:2].where(~is_missing, self.other_level)
        df["cabin_count"] = cabin.str.count(" ").where(~is_missing, 0).astype(int)

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        df = X.copy()

        self._cabin_features(df)

        df["surname"] = parse_surnames(df)
        df["title"] = parse_titles(df)
        df["surname_count"] = df["surname"].map(df["surname"].value_counts()).astype(int)

        df["family_size"] = (df["sibsp"] + df["parch"] + 1).astype(int)
        ticket = df["ticket"].astype(str)
        df["ticket_count"] = ticket.map(ticket.value_counts()).astype(int)

        log.info(f"Derived {len(DERIVED_COLUMNS)} features over {len(df)} rows")
        return df
