import json

import pytest

from matroid_csar.Experiment import TrialResult
from matroid_csar.experiments.common import parse_seed_range, save_json
from matroid_csar.experiments.parallel_utils import build_trial_callable, run_jobs_in_pool
from matroid_csar.experiments.run_csar_study import build_config, main, parse_args, parse_means, run_from_args


def test_parse_seed_range() -> None:
    assert parse_seed_range("3:5") == [3, 4, 5]
    assert parse_seed_range("7") == [7]
    with pytest.raises(ValueError):
        parse_seed_range("5:3")


def test_parse_means() -> None:
    assert parse_means(None) is None
    assert parse_means("1, 2.5,3") == [1.0, 2.5, 3.0]
    with pytest.raises(ValueError):
        parse_means(" , ")


def test_build_config_uniform_and_graphic() -> None:
    config = build_config(parse_args(["--matroid", "uniform", "--rank", "2", "--means", "3,2,1"]))
    assert config.matroid == "uniform"
    assert config.means == (3.0, 2.0, 1.0)

    random_means = build_config(parse_args(["--arms", "4", "--rank", "1", "--instance-seed", "9"]))
    again = build_config(parse_args(["--arms", "4", "--rank", "1", "--instance-seed", "9"]))
    assert random_means.means == again.means
    assert all(0.0 <= m < 1.0 for m in random_means.means)

    cycle = build_config(parse_args(["--matroid", "graphic", "--graph", "cycle", "--vertices", "5"]))
    assert cycle.n_arms == 5
    rand = build_config(parse_args(["--matroid", "graphic", "--graph", "random", "--vertices", "6", "--edges", "9"]))
    assert rand.n_arms == 9

    with pytest.raises(ValueError):
        build_config(parse_args(["--arms", "3", "--rank", "1", "--means", "1,2"]))
    with pytest.raises(ValueError):
        build_config(parse_args(["--means", "1,2"]))
    with pytest.raises(ValueError):
        build_config(parse_args(["--matroid", "graphic"]))


def test_run_jobs_in_pool_serial() -> None:
    config = build_config(parse_args(["--rank", "1", "--means", "5,0"]))
    seen = []
    jobs = [(seed, build_trial_callable(config, seed)) for seed in (0, 1)]
    results = run_jobs_in_pool(jobs, 1, on_done=lambda job_id, _res: seen.append(job_id))
    assert seen == [0, 1]
    assert all(isinstance(r, TrialResult) for r in results.values())


def test_run_from_args_writes_outputs(tmp_path) -> None:
    out = tmp_path / "study"
    args = parse_args(
        [
            "--rank", "2",
            "--means", "10,9,8,1,1",
            "--seeds", "0:4",
            "--output-dir", str(out),
            "--no-progress",
            "--plot",
        ]
    )
    stats = run_from_args(args)
    assert stats["n_trials"] == 5
    assert stats["outcomes"]["identified"] == 5
    lines = (out / "results.jsonl").read_text().splitlines()
    assert [json.loads(line)["seed"] for line in lines] == [0, 1, 2, 3, 4]
    saved = json.loads((out / "summary.json").read_text())
    assert saved["config"]["matroid"] == "uniform"
    assert (out / "pull_histogram.png").exists()


def test_round_budget_skips_histogram(tmp_path, caplog) -> None:
    out = tmp_path / "budget"
    args = parse_args(
        ["--rank", "2", "--means", "10,9,8,1,1", "--repetitions", "2", "--round-budget", "3",
         "--output-dir", str(out), "--no-progress", "--plot"]
    )
    with caplog.at_level("WARNING"):
        stats = run_from_args(args)
    assert stats["outcomes"]["budget_exceeded"] == 2
    assert not (out / "pull_histogram.png").exists()
    assert "round budget" in caplog.text


def test_main_prints_summary(tmp_path, capsys) -> None:
    main(
        ["--matroid", "graphic", "--graph", "cycle", "--vertices", "4", "--means", "4,3,2,0",
         "--seeds", "0:1", "--output-dir", str(tmp_path), "--no-progress", "--log-level", "warning"]
    )
    printed = json.loads(capsys.readouterr().out)
    assert printed["n_trials"] == 2
    assert "mean_pulls_per_arm" not in printed


def test_save_json_handles_numpy(tmp_path) -> None:
    import numpy as np

    path = tmp_path / "x.json"
    save_json(path, {"a": np.arange(3), "b": np.float64(1.5), "c": frozenset({2, 1})})
    assert json.loads(path.read_text()) == {"a": [0, 1, 2], "b": 1.5, "c": [1, 2]}


def test_algorithm_flags_reach_the_config(tmp_path) -> None:
    config = build_config(
        parse_args(["--rank", "1", "--means", "5,5,0", "--epsilon", "0.5"])
    )
    assert config.algorithm == "csar"
    assert config.epsilon == 0.5

    out = tmp_path / "phased"
    args = parse_args(
        ["--rank", "2", "--means", "10,9,8,1,1", "--algorithm", "phased", "--phase-samples", "50",
         "--seeds", "0:1", "--output-dir", str(out), "--no-progress"]
    )
    stats = run_from_args(args)
    assert stats["config"]["algorithm"] == "phased"
    assert stats["config"]["phase_samples"] == 50
    records = [json.loads(line) for line in (out / "results.jsonl").read_text().splitlines()]
    assert all(r["total_pulls"] % 50 == 0 for r in records)
    assert all(r["basis"] == [0, 1] for r in records)
