from functools import lru_cache
from importlib import resources


@lru_cache(maxsize=None)
def load_error_chart_template() -> str:
    with resources.files(__package__).joinpath("data/error_chart.svg").open("r", encoding="utf-8") as fh:
        return fh.read()
