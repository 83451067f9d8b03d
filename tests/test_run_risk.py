"""Tests for the run_risk CLI entry points."""

import json

import pytest

import run_risk


ENTITIES_YAML = """
as_of: 2024-06-30T00:00:00Z
entities:
  SUP-001:
    exposure: 600
    metrics:
      financial: {credit_score: 750, liquidity_ratio: 2.5}
      operational: {delivery_reliability: 0.92}
    history:
      - {timestamp: 2024-03-31, overall_score: 0.80}
      - {timestamp: 2024-04-30, overall_score: 0.82}
      - {timestamp: 2024-05-31, overall_score: 0.81}
  SUP-002:
    exposure: 400
    metrics:
      market:
        demand_stability: 0.5
        custom_kpi: {value: 2, min: 0, max: 5}
correlation:
  - [1.0, 0.2]
  - [0.2, 1.0]
"""


@pytest.fixture
def entities_file(tmp_path):
    path = tmp_path / "entities.yaml"
    path.write_text(ENTITIES_YAML)
    return str(path)


class TestRunEntities:

    def test_return_data(self, entities_file):
        result = run_risk.run_entities(entities_file, return_data=True)
        sup1 = result["entities"]["SUP-001"]

        # catalog weights: credit_score 0.25, liquidity_ratio 0.20
        financial = (450 / 550 * 0.25 + 0.8 * 0.20) / 0.45
        assert sup1["profile"]["risk_tier"] == "low"
        assert sup1["profile"]["overall_score"] == pytest.approx((financial * 0.25 + 0.84 * 0.20) / 0.45)
        assert sup1["tail_risk"]["observations"] == 4
        assert len(sup1["stress_tests"]) == 4
        assert "SUP-002" in result["formatted_report"]

    def test_custom_metric_is_scored(self, entities_file):
        result = run_risk.run_entities(entities_file, return_data=True)
        market = result["entities"]["SUP-002"]["profile"]["category_scores"]["market"]
        assert set(market["metric_scores"]) == {"demand_stability", "custom_kpi"}

    def test_cli_prints_report(self, entities_file, capsys):
        assert run_risk.main(["--entities", entities_file]) == 0
        out = capsys.readouterr().out
        assert "=== SUP-001 ===" in out
        assert "Stress tests:" in out

    def test_bad_file_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("foo: 1\n")
        with pytest.raises(ValueError):
            run_risk.run_entities(str(path), return_data=True)


class TestRunPortfolio:

    def test_return_data(self, entities_file):
        result = run_risk.run_portfolio(entities_file, return_data=True)
        portfolio = result["portfolio"]

        assert portfolio["total_exposure"] == pytest.approx(1000.0)
        assert portfolio["entity_ids"] == ["SUP-001", "SUP-002"]
        assert sum(c["contribution"] for c in portfolio["contributions"]) == pytest.approx(1.0)
        assert portfolio["degraded"] is False

    def test_cli_json(self, entities_file, capsys):
        assert run_risk.main(["--entities", entities_file, "--portfolio", "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert "formatted_report" not in data
        assert data["portfolio"]["correlation_matrix"] == [[1.0, 0.2], [0.2, 1.0]]
