#!/usr/bin/env python3
"""
Demo script to show a recipe running end to end without a browser.
Run with: python3 demo.py
"""

import asyncio
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from core.recipe import parse_recipe
from core.errors import ConfigError
from rules.evaluator import ExpressionEvaluator
from orchestrator.runner import RecipeRunner


class DemoSession:
    """In-memory stand-in for the browser session."""

    def __init__(self):
        self.url = None

    async def open(self):
        print("  > session opened")
        return self

    async def navigate(self, url):
        self.url = url
        print(f"  > navigated to {url}")

    async def close(self):
        print("  > session closed")


async def read_title(page, payload):
    return {"title": "Example Domain", "url": page.url}


async def echo(page, payload):
    print(f"  > echo: {payload.get('message')}")
    return payload.get("message")


async def explode(page, payload):
    raise RuntimeError("element not found")


DEMO_PLUGINS = {
    "demo": {"read_title": read_title, "echo": echo, "explode": explode},
}

DEMO_RECIPE = {
    "url": "https://example.com",
    "name": "Demo",
    "tasks": [
        {
            "name": "Read page",
            "steps": [
                {"demo": {"command": "read_title"}, "register": "page"},
                {"demo": {"command": "echo", "message": "Title is {{ page.title }}"}},
                {
                    "demo": {"command": "echo", "message": "never printed"},
                    "when": "page.title == 'Other'",
                },
                {"demo": {"command": "explode"}, "ignore_errors": True},
            ],
        },
        {"name": "Empty task", "steps": []},
    ],
}


async def demo():
    print("=" * 60)
    print("PUPPETCHEF - DEMO")
    print("=" * 60)
    print()

    # 1. Recipe validation
    print("[1] Recipe Validation")
    print("-" * 40)

    recipe = parse_recipe(DEMO_RECIPE, source="demo")
    print(f"  ✓ Recipe parsed: {recipe.name} ({len(recipe.tasks)} tasks)")
    print(f"    - Namespaces: {', '.join(recipe.namespaces)}")

    try:
        parse_recipe({"name": "broken", "tasks": []})
    except ConfigError as e:
        print(f"  ✓ Invalid recipe rejected: {e.message}")
    print()

    # 2. Expressions
    print("[2] Expression Evaluation")
    print("-" * 40)

    evaluator = ExpressionEvaluator()
    variables = {"page": {"title": "Example Domain"}, "count": 3}
    for expression in ("count > 2 and page.title.length == 14", "lower(page.title)", "count * 2"):
        print(f"  ✓ {expression} => {evaluator.evaluate(expression, variables)!r}")
    print(f"  ✓ interpolate => {evaluator.interpolate('{{ count }} items', variables)!r}")
    print()

    # 3. Run
    print("[3] Recipe Run")
    print("-" * 40)

    runner = RecipeRunner(DemoSession(), DEMO_PLUGINS)
    retcode = await runner.run(recipe)

    for result in runner.task_results:
        statuses = ", ".join(outcome.status.value for outcome in result.steps) or "-"
        print(f"  ✓ {result.name}: {result.outcome.value} [{statuses}]")
    print(f"  ✓ Registered variables: {sorted(runner.store.snapshot())}")
    print(f"  ✓ Exit code: {retcode}")
    print()

    print("=" * 60)
    print("DEMO COMPLETE")
    print("=" * 60)
    return retcode


if __name__ == "__main__":
    sys.exit(asyncio.run(demo()))
