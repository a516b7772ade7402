from importlib import resources


def load_options_reference() -> str:
    with resources.files(__package__).joinpath("data/OPTIONS.md").open("r", encoding="utf-8") as fh:
        return fh.read()
