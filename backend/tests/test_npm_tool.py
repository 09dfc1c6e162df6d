"""Tests for the package-registry CLI runner."""

import json

import pytest
from conftest import FakeGateway
from pydantic import ValidationError

from codescout import schemas
from codescout.services.tools.base import Executable, Result
from codescout.services.tools.npm_tool import (
    NpmToolRunner,
    build_search_args,
    build_view_args,
    shape_search_results,
    shape_view_result,
)


def body(result: Result) -> dict:
    return json.loads(result.text)


def test_arg_builders():
    assert build_search_args(schemas.PackageSearchQuery(query="react router", search_limit=3)) == [
        "react router",
        "--searchlimit",
        "3",
        "--json",
    ]
    assert build_view_args(schemas.PackageViewQuery(package_name="react", fields=["version"])) == [
        "react",
        "version",
        "--json",
    ]


def test_option_like_names_are_rejected():
    with pytest.raises(ValidationError):
        schemas.PackageViewQuery(package_name="--registry=evil")
    with pytest.raises(ValidationError):
        schemas.PackageSearchQuery(query="-g")


def test_shape_search_results_dedupes_and_trims():
    packages = [
        {
            "name": "left-pad",
            "version": "1.3.0",
            "description": "x" * 150,
            "keywords": [str(i) for i in range(20)],
            "links": {"repository": "git+https://github.com/stevemao/left-pad.git"},
        },
        {"name": "left-pad", "version": "0.0.1"},
    ]
    shaped = shape_search_results(packages)
    assert len(shaped) == 1
    assert shaped[0]["description"].endswith("...")
    assert len(shaped[0]["description"]) == 103
    assert len(shaped[0]["keywords"]) == 10
    assert shaped[0]["repository"] == "https://github.com/stevemao/left-pad"


def test_shape_view_result_trims_versions_and_readme():
    doc = {
        "name": "pkg",
        "versions": [f"1.0.{i}" for i in range(25)],
        "readme": "long",
        "repository": {"type": "git", "url": "git://github.com/a/b.git"},
    }
    shaped = shape_view_result(doc)
    assert shaped["versions"][-1] == "1.0.24"
    assert len(shaped["versions"]) == 10
    assert shaped["version_count"] == 25
    assert "readme" not in shaped
    assert shaped["repository"] == "https://github.com/a/b"


async def test_search_packages_uses_registry_cli_and_caches(cache):
    gateway = FakeGateway(
        lambda spec: Result.text_result(json.dumps([{"name": "zod", "version": "3.0.0", "links": {}}]))
    )
    runner = NpmToolRunner(gateway, cache)
    query = schemas.PackageSearchQuery(query="zod")

    first = await runner.search_packages(query)
    await runner.search_packages(query)

    assert len(gateway.calls) == 1
    assert gateway.calls[0].executable is Executable.REGISTRY_CLI
    assert gateway.calls[0].subcommand == "search"
    assert body(first)["data"][0]["name"] == "zod"
    assert cache.stats().hits == 1


async def test_view_package_not_found(cache):
    gateway = FakeGateway(lambda spec: Result.error("npm ERR! code E404\nnpm ERR! 404 Not Found"))
    runner = NpmToolRunner(gateway, cache)

    result = await runner.view_package(schemas.PackageViewQuery(package_name="no-such-pkg-xyz"))

    assert result.is_error
    assert body(result)["meta"]["classification"] == "not_found"
    assert len(cache) == 0


async def test_view_package_with_field_returns_raw_value(cache):
    gateway = FakeGateway(lambda spec: Result.text_result('"18.2.0"'))
    runner = NpmToolRunner(gateway, cache)

    result = await runner.view_package(schemas.PackageViewQuery(package_name="react", fields=["version"]))

    assert body(result)["data"] == "18.2.0"
    assert body(result)["meta"] == {"package": "react"}


async def test_cache_can_be_disabled(cache):
    gateway = FakeGateway(lambda spec: Result.text_result("[]"))
    runner = NpmToolRunner(gateway, cache, use_cache=False)
    query = schemas.PackageSearchQuery(query="nothing")

    result = await runner.search_packages(query)
    await runner.search_packages(query)

    assert len(gateway.calls) == 2
    assert body(result)["hints"]


async def test_search_with_non_object_entries_is_malformed(cache):
    gateway = FakeGateway(lambda spec: Result.text_result('["zod", 1]'))
    runner = NpmToolRunner(gateway, cache)

    result = await runner.search_packages(schemas.PackageSearchQuery(query="zod"))

    assert result.is_error
    assert body(result)["meta"]["classification"] == "malformed_output"
    assert len(cache) == 0
