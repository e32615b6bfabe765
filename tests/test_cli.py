"""Integration tests for CLI."""

import json
import os
import subprocess
import sys
from pathlib import Path


def run_lofireads(args: list[str], data_dir: Path) -> subprocess.CompletedProcess:
    """Run lofireads CLI command."""
    env = {**os.environ, "LOFIREADS_DATA_DIR": str(data_dir)}
    return subprocess.run(
        [sys.executable, "-m", "lofireads.cli"] + args,
        capture_output=True,
        text=True,
        env=env,
    )


class TestCLIIntegration:
    """Integration tests for CLI commands."""

    def test_books_lists_catalog(self, temp_dir):
        result = run_lofireads(["books"], temp_dir)

        assert result.returncode == 0
        assert "Whispers in the Rain" in result.stdout
        assert "6 book(s)" in result.stdout

    def test_books_filter_and_sort(self, temp_dir):
        result = run_lofireads(
            ["books", "--genre", "Literary Fiction", "--sort", "price-desc", "--json"], temp_dir
        )

        assert result.returncode == 0
        assert [b["id"] for b in json.loads(result.stdout)] == ["6", "1"]

    def test_books_no_matches(self, temp_dir):
        result = run_lofireads(["books", "--min-price", "100"], temp_dir)

        assert result.returncode == 0
        assert "No books found." in result.stdout

    def test_books_rejects_unknown_sort(self, temp_dir):
        result = run_lofireads(["books", "--sort", "pages-asc"], temp_dir)
        assert result.returncode == 2

    def test_book_detail(self, temp_dir):
        result = run_lofireads(["book", "3"], temp_dir)

        assert result.returncode == 0
        assert "Midnight Gardens" in result.stdout
        assert "Magical Realism" in result.stdout

    def test_book_json(self, temp_dir):
        result = run_lofireads(["book", "2", "--json"], temp_dir)

        assert result.returncode == 0
        data = json.loads(result.stdout)
        assert data["title"] == "The Coffee Shop Chronicles"
        assert data["price"] == 19.99

    def test_book_not_found(self, temp_dir):
        result = run_lofireads(["book", "999"], temp_dir)

        assert result.returncode == 1
        assert "Error: Book not found: 999" in result.stderr

    def test_facets(self, temp_dir):
        result = run_lofireads(["facets", "--json"], temp_dir)

        assert result.returncode == 0
        data = json.loads(result.stdout)
        assert "Short Stories" in data["genres"]
        assert data["year_range"] == {"min": 2019, "max": 2024}

    def test_recommend(self, temp_dir):
        result = run_lofireads(["recommend", "1", "-n", "2", "--json"], temp_dir)

        assert result.returncode == 0
        assert [b["id"] for b in json.loads(result.stdout)] == ["6", "2"]

    def test_recommend_unknown_book(self, temp_dir):
        result = run_lofireads(["recommend", "999"], temp_dir)

        assert result.returncode == 1
        assert "Error:" in result.stderr

    def test_no_command_prints_help(self, temp_dir):
        result = run_lofireads([], temp_dir)

        assert result.returncode == 0
        assert "usage:" in result.stdout
