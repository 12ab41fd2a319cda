"""Pytest configuration and shared fixtures."""

import os
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

# Must be set before config is imported
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="preview-builder-logs-"))

FIXED_NOW = datetime(2026, 1, 24, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def memory_store():
    """Empty in-memory key-value store."""
    from kv_store import MemoryKVStore
    return MemoryKVStore()


@pytest.fixture
def session_store(memory_store):
    """Preview session store over the in-memory store."""
    from preview_store import PreviewSessionStore
    return PreviewSessionStore(memory_store)


@pytest.fixture
def clock():
    """Mutable clock: set clock.now to move time."""
    class Clock:
        now = FIXED_NOW

        def __call__(self):
            return self.now

    return Clock()


@pytest.fixture
def lifecycle(session_store, clock):
    """PreviewLifecycle with a fixed clock and advisory expiry."""
    from preview_lifecycle import PreviewLifecycle
    return PreviewLifecycle(session_store, ttl_hours=24, enforce_expiry=False, clock=clock)


@pytest.fixture
def plain_project():
    from models import ProjectDescriptor
    return ProjectDescriptor(name="Hello Site", framework="plain")


@pytest.fixture
def react_project():
    from models import ProjectDescriptor
    return ProjectDescriptor(name="Counter", framework="react")


@pytest.fixture
def hello_file_set():
    """index.html + a.css + a.js: the script writes 'hi' into #x."""
    from models import ProjectFile
    return [
        ProjectFile(path="index.html", type="file", content="<div id='x'></div>", language="html"),
        ProjectFile(path="a.css", type="file", content="body{color:red}", language="css"),
        ProjectFile(
            path="a.js",
            type="file",
            content="document.getElementById('x').textContent='hi'",
            language="javascript",
        ),
    ]


@pytest.fixture
def react_file_set():
    """Component project with a Page component split over two files."""
    from models import ProjectFile
    return [
        ProjectFile(path="app", type="folder"),
        ProjectFile(
            path="app/Button.jsx",
            content="import React from 'react';\n\nexport function Button({ label }) {\n  return <button>{label}</button>;\n}\n",
            language="jsx",
        ),
        ProjectFile(
            path="app/page.tsx",
            content=(
                "import React, {\n  useState,\n} from 'react';\n"
                "import { Button } from './Button';\n\n"
                "export default function Page() {\n"
                "  const [count, setCount] = useState<number>(0);\n"
                "  return <Button label={`Clicked ${count}`} />;\n"
                "}\n"
            ),
            language="tsx",
        ),
        ProjectFile(path="app/globals.css", content="button { color: blue; }", language="css"),
    ]
