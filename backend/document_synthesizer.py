"""
Document Synthesizer

Builds the self-contained HTML page served for a preview session:

- a header showing the project name
- a sandboxed iframe with an empty initial document
- a bootstrap script (run in the host page) carrying the File Set as JSON;
  on the frame's load event it resolves the entry point, writes the markup
  into the frame and appends styles and scripts in File Set order

Component-based projects (React / Next.js) take an alternate path: the frame
markup becomes a generated document that loads React, ReactDOM and Babel
standalone, transforms all component sources as one block and mounts the
``Page`` component into ``#root``.

Synthesis is pure: no I/O, inputs are never mutated, and every valid File
Set (including an empty one) produces a document.
"""

import html
import json
import re
from string import Template
from typing import Any, Dict, List, Optional, Tuple

import config
from entry_resolver import extension_rules, is_component_project, resolve_entry
from models import ProjectDescriptor, ProjectFile

# Capabilities granted to the preview frame. allow-same-origin is required so
# the host bootstrap can write into the frame's document.
SANDBOX_CAPABILITIES = ("allow-scripts", "allow-same-origin", "allow-forms", "allow-popups")

# Conventional name of the component mounted for component-based projects
MOUNT_COMPONENT = "Page"

FALLBACK_SHELL = (
    '<!DOCTYPE html>\n'
    '<html lang="en">\n'
    '<head><meta charset="utf-8"></head>\n'
    '<body><div id="root"></div></body>\n'
    '</html>\n'
)

# Modules served by the UMD globals loaded into the component document
RUNTIME_GLOBALS = {
    "react": "React",
    "react-dom": "ReactDOM",
    "react-dom/client": "ReactDOM",
}

# import X from 'a'; import { a,\n b } from 'a'; import * as X from 'a'; import 'a.css'
_IMPORT_STATEMENT = re.compile(
    r'^[ \t]*import\s+(?:(?P<clause>[\w*${}\s,]+?)\s+from\s+)?[\'"](?P<module>[^\'"\n]+)[\'"][ \t]*;?',
    re.MULTILINE,
)
_NAMED_IMPORTS = re.compile(r'\{([^}]*)\}')
_AS = re.compile(r'\s+as\s+')
_EXPORT_LIST = re.compile(r'^[ \t]*export\s*\{[^}]*\}(?:\s*from\s*[\'"][^\'"\n]+[\'"])?[ \t]*;?', re.MULTILINE)
_EXPORT_DEFAULT = re.compile(r'^([ \t]*)export\s+default\s+', re.MULTILINE)
_EXPORT_DECL = re.compile(
    r'^([ \t]*)export\s+(?=(?:async\s+)?(?:function|const|let|var|class|interface|type|enum)\b)',
    re.MULTILINE,
)

HOST_TEMPLATE = Template("""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>$title - Preview</title>
  <style>
    html, body { margin: 0; height: 100%; }
    body { display: flex; flex-direction: column; font-family: system-ui, -apple-system, sans-serif; background: #f4f5f7; }
    .preview-header { display: flex; align-items: center; gap: 12px; padding: 10px 16px; background: #1e1e2e; color: #f8f8f2; }
    .preview-title { margin: 0; font-size: 16px; font-weight: 600; }
    .preview-framework { font-size: 12px; padding: 2px 8px; border-radius: 10px; background: #44475a; }
    #preview-frame { flex: 1; width: 100%; border: 0; background: #ffffff; }
  </style>
</head>
<body>
  <header class="preview-header">
    <h1 class="preview-title">$title</h1>
    <span class="preview-framework">$framework</span>
  </header>
  <iframe id="preview-frame" title="$title preview" src="about:blank" sandbox="$sandbox"></iframe>
  <script>
$bootstrap
  </script>
</body>
</html>
""")

BOOTSTRAP_TEMPLATE = Template("""(function () {
  var payload = $payload;
  var frame = document.getElementById('preview-frame');
  var injected = false;

  function endsWithAny(path, extensions) {
    for (var i = 0; i < extensions.length; i++) {
      var ext = extensions[i];
      if (path.length >= ext.length && path.slice(path.length - ext.length) === ext) {
        return true;
      }
    }
    return false;
  }

  function resolveEntry(files, rules) {
    var entry = { markup: null, styles: [], scripts: [] };
    files.forEach(function (file) {
      if (file.type !== 'file') {
        return;
      }
      if (endsWithAny(file.path, rules.markup)) {
        if (entry.markup === null) {
          entry.markup = file;
        }
      } else if (endsWithAny(file.path, rules.style)) {
        entry.styles.push(file);
      } else if (endsWithAny(file.path, rules.script)) {
        entry.scripts.push(file);
      }
    });
    return entry;
  }

  function inject() {
    // Writing the frame document fires load again
    if (injected) {
      return;
    }
    injected = true;

    var entry = resolveEntry(payload.files, payload.rules);
    var markup = payload.componentDocument;
    if (markup === null) {
      markup = entry.markup !== null ? (entry.markup.content || '') : payload.fallbackShell;
    }

    var doc = frame.contentDocument || frame.contentWindow.document;
    doc.open();
    doc.write(markup);
    doc.close();

    var head = doc.head || doc.documentElement;
    entry.styles.forEach(function (file) {
      var style = doc.createElement('style');
      style.setAttribute('data-path', file.path);
      style.textContent = file.content || '';
      head.appendChild(style);
    });

    // Component sources already run inside the component document
    if (payload.componentDocument === null) {
      var body = doc.body || doc.documentElement;
      entry.scripts.forEach(function (file) {
        var script = doc.createElement('script');
        script.setAttribute('data-path', file.path);
        script.text = file.content || '';
        body.appendChild(script);
      });
    }
    frame.setAttribute('data-injected', 'true');
  }

  frame.addEventListener('load', inject);
  if (frame.contentDocument && frame.contentDocument.readyState === 'complete') {
    inject();
  }
})();""")

COMPONENT_TEMPLATE = Template("""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>$title</title>
  <script src="$react_url"></script>
  <script src="$react_dom_url"></script>
  <script src="$babel_url"></script>
</head>
<body>
  <div id="root"></div>
  <script>
(function () {
  var source = $source;
  var compiled = Babel.transform(source, {
    filename: 'page.tsx',
    presets: [['typescript', { isTSX: true, allExtensions: true }], 'react']
  }).code;
  var script = document.createElement('script');
  script.text = compiled + '\\nReactDOM.createRoot(document.getElementById("root")).render(React.createElement($component));';
  document.body.appendChild(script);
})();
  </script>
</body>
</html>
""")


def script_json(value: Any) -> str:
    """
    Serialize a value as JSON that is safe inside an inline <script>.

    Markup-significant characters are emitted as unicode escapes so that
    generated content such as ``</script>`` or ``<!--`` cannot terminate
    the surrounding script element.
    """
    text = json.dumps(value, ensure_ascii=False)
    return (
        text.replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def to_classic_script(source: str) -> str:
    """Strip ES module syntax so component code can run as one classic script."""
    source = _IMPORT_STATEMENT.sub("", source)
    source = _EXPORT_LIST.sub("", source)
    source = _EXPORT_DEFAULT.sub(r"\1", source)
    return _EXPORT_DECL.sub(r"\1", source)


def runtime_imports(source: str) -> List[Tuple[str, str]]:
    """
    Bindings declared by imports of the React runtime modules.

    Returns:
        (local name, global expression) pairs in import order, e.g.
        ``import R, { useState as useS } from 'react'`` gives
        ``[("useS", "React.useState"), ("R", "React")]``. Type-only imports
        declare nothing.
    """
    bindings = []
    for match in _IMPORT_STATEMENT.finditer(source):
        runtime = RUNTIME_GLOBALS.get(match.group("module"))
        clause = (match.group("clause") or "").strip()
        if runtime is None or not clause or clause.startswith("type "):
            continue

        named = _NAMED_IMPORTS.search(clause)
        if named:
            for spec in named.group(1).split(","):
                spec = spec.strip()
                if not spec or spec.startswith("type "):
                    continue
                parts = _AS.split(spec)
                bindings.append((parts[-1], f"{runtime}.{parts[0]}"))
            clause = clause[:named.start()] + clause[named.end():]

        for default in clause.split(","):
            default = _AS.split(default.strip())[-1]
            if default and default != "*":
                bindings.append((default, runtime))
    return bindings


def _declares(source: str, name: str) -> bool:
    """True if the source declares ``name`` itself (plain or destructured)."""
    escaped = re.escape(name)
    return bool(
        re.search(rf'\b(?:const|let|var|function|class)\s+{escaped}(?![\w$])', source)
        or re.search(rf'\b(?:const|let|var)\s*\{{[^}}]*(?<![\w$]){escaped}(?![\w$])[^}}]*\}}\s*=', source)
    )


def concatenate_components(files: List[ProjectFile]) -> str:
    """
    Concatenate component sources in File Set order as a single block.

    Runtime imports become one declaration per imported name at the top of
    the block. Names a file already declares itself are left to that file.
    """
    bindings: Dict[str, str] = {}
    parts = []
    for entry in files:
        source = entry.content or ''
        for local, expression in runtime_imports(source):
            bindings.setdefault(local, expression)
        parts.append(f"// {entry.path}\n{to_classic_script(source)}\n")

    block = "\n".join(parts)
    header = [
        f"const {local} = {expression};"
        for local, expression in bindings.items()
        if local != expression and not _declares(block, local)
    ]
    if header:
        return "\n".join(header) + "\n\n" + block
    return block


def build_component_document(project: ProjectDescriptor, components: List[ProjectFile]) -> str:
    """Build the frame document for React / Next.js projects."""
    return COMPONENT_TEMPLATE.substitute(
        title=html.escape(project.name),
        react_url=html.escape(config.REACT_RUNTIME_URL),
        react_dom_url=html.escape(config.REACT_DOM_RUNTIME_URL),
        babel_url=html.escape(config.BABEL_RUNTIME_URL),
        source=script_json(concatenate_components(components)),
        component=MOUNT_COMPONENT,
    )


def build_payload(project: ProjectDescriptor, file_set: List[ProjectFile]) -> Dict[str, Any]:
    """
    Build the data embedded in the bootstrap script.

    Returns:
        Dict with files (File Set order), extension rules, the fallback
        shell and, for component projects, the generated component document
    """
    component_document: Optional[str] = None
    if is_component_project(project):
        resolved = resolve_entry(file_set, project)
        component_document = build_component_document(project, resolved.script_files)

    return {
        "files": [entry.model_dump(by_alias=True, mode="json") for entry in file_set],
        "rules": extension_rules(project),
        "fallbackShell": FALLBACK_SHELL,
        "componentDocument": component_document,
    }


def synthesize_document(project: ProjectDescriptor, file_set: List[ProjectFile]) -> str:
    """
    Produce the complete preview page for a project snapshot.

    Args:
        project: Name (shown in the header) and framework (selects the path)
        file_set: Files in generation order

    Returns:
        HTML document string
    """
    bootstrap = BOOTSTRAP_TEMPLATE.substitute(payload=script_json(build_payload(project, file_set)))
    return HOST_TEMPLATE.substitute(
        title=html.escape(project.name),
        framework=html.escape(project.framework),
        sandbox=" ".join(SANDBOX_CAPABILITIES),
        bootstrap=bootstrap,
    )
