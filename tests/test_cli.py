import json
import time

from click.testing import CliRunner

from storescan.cli import cli


def _config_file(tmp_path):
    state = tmp_path / "state.json"
    path = tmp_path / "scan.yaml"
    path.write_text(f"settings:\n  state_file: {state}\n", encoding="utf-8")
    return path, state


def _json_lines(output):
    return [json.loads(line) for line in output.splitlines() if line.startswith("{")]


def test_extract_carousels_from_saved_page(tmp_path):
    page = tmp_path / "page.html"
    page.write_text(
        "<h2>Snacks</h2><div data-a-carousel-options='{\"id_list\": [\"B000000001\", \"B000000002\"]}'></div>",
        encoding="utf-8",
    )

    result = CliRunner().invoke(cli, ["extract", str(page)])

    assert result.exit_code == 0, result.output
    records = _json_lines(result.output)
    assert records[0]["title"] == "Snacks"
    assert records[0]["item_ids"] == ["B000000001", "B000000002"]


def test_extract_fields_from_saved_page(tmp_path):
    page = tmp_path / "item.html"
    page.write_text("<h1>Sourdough Loaf</h1><span class='price'>$5.99</span>", encoding="utf-8")

    result = CliRunner().invoke(cli, ["extract", str(page), "--kind", "fields"])

    assert result.exit_code == 0, result.output
    payload = _json_lines(result.output)[0]
    assert payload["fields"]["name"] == "Sourdough Loaf"
    assert payload["fields"]["price"] == "$5.99"
    assert "name" in payload["extraction"]


def test_token_show_and_clear(tmp_path):
    config, state = _config_file(tmp_path)
    state.write_text(
        json.dumps(
            {"session_token": {"value": "abcdefghijklmnopq", "captured_at": time.time() - 120, "source": "provoked-interaction"}}
        ),
        encoding="utf-8",
    )
    runner = CliRunner()

    shown = runner.invoke(cli, ["--config", str(config), "token", "show"])
    assert shown.exit_code == 0, shown.output
    assert "abcdefghijkl..." in shown.output
    assert "source=provoked-interaction" in shown.output
    assert "(fresh)" in shown.output

    cleared = runner.invoke(cli, ["--config", str(config), "token", "clear"])
    assert cleared.exit_code == 0, cleared.output
    assert "session_token" not in json.loads(state.read_text(encoding="utf-8"))

    again = runner.invoke(cli, ["--config", str(config), "token", "show"])
    assert "No cached token" in again.output


def test_item_mode_requires_items(tmp_path):
    config, _ = _config_file(tmp_path)
    stores = tmp_path / "stores.csv"
    stores.write_text("StoreCode,StoreId\nAUS,10221\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["--config", str(config), "scan", "--stores", str(stores)])

    assert result.exit_code == 2
    assert "--items is required" in result.output


def test_invalid_config_is_a_usage_error(tmp_path):
    path = tmp_path / "scan.yaml"
    path.write_text("settings:\n  mode: everything\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["--config", str(path), "token", "show"])

    assert result.exit_code == 2


def test_invalid_agent_count_is_a_usage_error(tmp_path):
    config, state = _config_file(tmp_path)
    stores = tmp_path / "stores.csv"
    stores.write_text("StoreCode,StoreId\nAUS,10221\n", encoding="utf-8")

    result = CliRunner().invoke(
        cli, ["--config", str(config), "scan", "--stores", str(stores), "--mode", "merchandising", "--agents", "0"]
    )

    assert result.exit_code == 2
    assert "max_agents must be >= 1" in result.output
    assert not state.exists()
