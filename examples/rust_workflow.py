# rust_workflow.py
# The same pipeline as rust.yml, written with the Python helpers.
from __future__ import annotations

from pipexec import configuration, features, on, pipeline, sh

BUILD = sh("build", "cargo build {flags} --verbose")
TEST = sh("test", "cargo test {flags} --verbose")
LINT = sh("lint", "cargo clippy {flags} -- -D warnings")
FORMAT = sh("format-check", "cargo fmt --check", flag_insensitive=True)


def workflow():
    return pipeline(
        "Rust",
        features({"default": [], "multi": ["multi"]}).configurations(
            lambda name, flags: configuration(
                name,
                BUILD, TEST, LINT, FORMAT,
                flags=flags,
                title=f"Compilation/Style/Tests ({name.title()})",
            )
        ),
        triggers=on(push="stable", pull_request="stable"),
        env={"CARGO_TERM_COLOR": "always"},
    )
