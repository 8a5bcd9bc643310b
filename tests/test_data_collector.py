"""Tests for CSV recording of simulated runs."""

import csv

import pytest

from field_guidance.data_collector import DataCollector
from field_guidance.follower import GuidanceStatus
from field_guidance.models import GuidanceOutput, VehicleState
from field_guidance.plot_styles import load_csv_to_dict
from field_guidance.simulation import simulate_path


class TestDataCollector:
    def test_creates_timestamped_run_dir(self, tmp_path):
        collector = DataCollector(output_dir=str(tmp_path))
        assert collector.run_dir.parent == tmp_path / "results"
        assert collector.run_dir.name.startswith("run_")

    def test_rejects_file_as_output_dir(self, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("x")
        with pytest.raises(ValueError):
            DataCollector(output_dir=str(target))

    def test_logs_ticks(self, tmp_path):
        with DataCollector(run_dir=str(tmp_path / "run")) as collector:
            collector.log_tick(
                0.1,
                VehicleState.at(1.0, 2.0, 0.0, speed_kmh=8.0),
                GuidanceOutput(steer_angle=-3.5, cross_track_error=0.25, distance_off_mm=250),
                GuidanceStatus.FOLLOWING,
            )

        with open(collector.guidance_output_path, newline="") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 1
        assert rows[0]["status"] == "following"
        assert float(rows[0]["steer_angle"]) == pytest.approx(-3.5)
        assert int(rows[0]["distance_off_mm"]) == 250

    def test_records_simulation(self, tmp_path, field_line):
        state = VehicleState.at(32.0, 20.0, 0.0, speed_kmh=8.0)
        with DataCollector(run_dir=str(tmp_path / "run")) as collector:
            result = simulate_path(field_line, state, max_steps=50, recorder=collector)

        data = load_csv_to_dict(collector.guidance_output_path)
        assert len(data["time"]) == len(result.cross_track_errors) == 50
        assert set(data["status"]) == {"following"}
        path = load_csv_to_dict(collector.path_output_path)
        assert list(path["northing"]) == pytest.approx([20.0, 180.0])
