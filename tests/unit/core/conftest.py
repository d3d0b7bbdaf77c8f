"""Shared fixtures for core unit tests"""

import pytest

from tmpltr.core.content import ContentFile


SAMPLE_CONTENT = """\
# Quote for ACME
[meta]
template = "quote.typ"
template_id = "quote"
template_version = "1.0.0"
generated_at = 2025-01-15T10:00:00Z

[quote]
number = "2025-001" # running number
title = "Website Relaunch"
date = 2025-01-15

[quote.client]
name = "ACME Corporation"

[blocks.intro]
title = "Introduction"
format = "markdown"
content = "Thank you for your **inquiry**."

[blocks.scope]
title = "Scope"
format = "typst"
content = "Concept and design."

[blocks.prices]
title = "Prices"
type = "table"
columns = ["Item", "Price"]
rows = [["Design", "1000"], ["Build", "2000"]]
"""

SAMPLE_TEMPLATE = """\
// @description: Test template for tmpltr
// @version: 1.0.0

#import "@local/tmpltr-lib:1.0.0": editable, editable-block

#editable("quote.number", type: "text", default: "2025-001")
#editable("quote.title", type: "text", default: "Project Title")
#editable("quote.client.name", type: "text")

#editable-block("blocks.intro", title: "Introduction", format: "markdown")[
  This is the introduction text.
]
"""


@pytest.fixture(name="content_path")
def content_path_fixture(tmp_path):
    path = tmp_path / "quote.toml"
    path.write_text(SAMPLE_CONTENT, encoding="utf-8")
    return path


@pytest.fixture(name="content")
def content_fixture(content_path):
    return ContentFile.load(content_path)


@pytest.fixture(name="template_path")
def template_path_fixture(tmp_path):
    path = tmp_path / "quote.typ"
    path.write_text(SAMPLE_TEMPLATE, encoding="utf-8")
    return path
