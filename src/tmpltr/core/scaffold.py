"""Bundled Typst sources: the tmpltr-lib helper package, the example pair, and new-template skeletons"""

import tempfile
from pathlib import Path

from tmpltr.errors import ConfigError


LIB_NAME = "tmpltr-lib"
LIB_VERSION = "1.0.0"
LIB_IMPORT = f'#import "@local/{LIB_NAME}:{LIB_VERSION}": editable, editable-block, tmpltr-data, md, get'

LIB_MANIFEST = f"""\
[package]
name = "{LIB_NAME}"
version = "{LIB_VERSION}"
entrypoint = "lib.typ"
license = "MIT"
description = "tmpltr helper library"
"""

LIB_SOURCE = """\
// tmpltr helper library: data access and editable markers

// Content data handed over by `tmpltr compile` as a JSON string input
#let tmpltr-data() = json.decode(sys.inputs.at("data", default: "{}"))

// Dotted-path lookup with a fallback for missing keys
#let get(data, path, default: none) = {
  let current = data
  for key in path.split(".") {
    if type(current) != dictionary or key not in current {
      return default
    }
    current = current.at(key)
  }
  current
}

// Render Typst markup held in a string (markdown blocks arrive pre-converted)
#let md(source) = {
  if source == none or source == "" { [] } else { eval(source, mode: "markup") }
}

// A single editable value; the analyzer reads path, type and default
#let editable(path, type: "text", default: none) = {
  let value = get(tmpltr-data(), path, default: default)
  if value == none { [] } else { [#value] }
}

// An editable block; falls back to the body when the content file has none
#let editable-block(path, title: none, format: "markdown", body) = {
  let entry = get(tmpltr-data(), path, default: none)
  let source = if type(entry) == dictionary { entry.at("content", default: none) } else { entry }
  if source == none {
    body
  } else if format == "plain" {
    [#source]
  } else {
    md(source)
  }
}
"""

EXAMPLE_TEMPLATE = f"""\
// @description: Example quote with a client block and a markdown introduction
// @version: 1.0.0

{LIB_IMPORT}

#let data = tmpltr-data()

#set page(paper: "a4", margin: 2.5cm)
#set text(size: 11pt)

#align(right)[
  Quote #editable("quote.number", type: "text", default: "2025-001") \\
  #editable("quote.date", type: "date", default: "2025-01-01")
]

#v(1cm)

#text(size: 20pt, weight: "bold")[
  #editable("quote.title", type: "text", default: "Project Title")
]

*Client:* #editable("quote.client.name", type: "text", default: "Client Name")

#v(0.5cm)

#editable-block("blocks.intro", title: "Introduction", format: "markdown")[
  Thank you for your interest.
]

#editable-block("blocks.scope", title: "Scope", format: "markdown")[
  Describe the scope of work here.
]

#v(1cm)

#text(fill: rgb("#64748b"))[
  #get(data, "quote.footer", default: "Prices exclude VAT.")
]
"""

EXAMPLE_CONTENT = """\
# Example content for example-template.typ

[meta]
template = "example-template.typ"
template_id = "example-template"
template_version = "1.0.0"

[quote]
number = "2025-001"
date = "2025-01-15"
title = "Website Relaunch"

[quote.client]
name = "ACME Corporation"

[blocks.intro]
title = "Introduction"
format = "markdown"
content = \"\"\"
Thank you for your inquiry. We are happy to offer the following:

- **Design** of a new visual identity
- *Implementation* of the website
\"\"\"

[blocks.scope]
title = "Scope"
format = "markdown"
content = "The project covers concept, design and implementation."
"""

TEMPLATE_SKELETON = """\
// @description: {description}
// @version: {version}

{lib_import}

#let data = tmpltr-data()

#set page(paper: "a4", margin: 2.5cm)
#set text(font: get(data, "brand.fonts.body", default: "Inter"), size: 11pt)

#let logo = get(data, "brand.logo", default: none)
#if logo != none and logo != "" {{
  align(left)[#image(logo, width: 3cm)]
}}

#v(1cm)

#align(center)[
  #text(size: 24pt, weight: "bold")[
    #editable("document.title", type: "text", default: "Document Title")
  ]
]

#align(center)[
  #text(size: 14pt, fill: rgb("#64748b"))[
    #editable("document.subtitle", type: "text", default: "Subtitle")
  ]
]

#v(1cm)

#editable-block("blocks.introduction", title: "Introduction", format: "markdown")[
  Add your introduction here.
]

#v(0.5cm)

#editable-block("blocks.content", title: "Main Content", format: "markdown")[
  Add your main content here.
]
"""

CONTENT_SKELETON = """\
# Content for the {name} template

[meta]
template = "{name}.typ"
template_id = "{name}"
template_version = "{version}"

[document]
title = "Document Title"
subtitle = "Subtitle"

[blocks.introduction]
title = "Introduction"
format = "markdown"
content = "Add your introduction here."

[blocks.content]
title = "Main Content"
format = "markdown"
content = "Add your main content here."
"""


def new_template_source(name: str, description: str | None = None, version: str = "1.0.0") -> str:
    """Skeleton template with comment metadata, editable fields and editable blocks."""
    return TEMPLATE_SKELETON.format(
        description=description or f"Template for {name}",
        version=version,
        lib_import=LIB_IMPORT,
    )


def new_content_source(name: str, version: str = "1.0.0") -> str:
    return CONTENT_SKELETON.format(name=name, version=version)


def prepare_package(base: Path | None = None) -> Path:
    """Write the helper library as a local Typst package; returns the package root to pass to typst."""
    base = base or Path(tempfile.gettempdir()) / "tmpltr-typst-packages"
    pkg_root = base / "local" / LIB_NAME / LIB_VERSION
    try:
        pkg_root.mkdir(parents=True, exist_ok=True)
        (pkg_root / "typst.toml").write_text(LIB_MANIFEST, encoding="utf-8")
        (pkg_root / "lib.typ").write_text(LIB_SOURCE, encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"writing Typst package to {pkg_root}: {e}") from e
    return base
