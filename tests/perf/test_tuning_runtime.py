import json
import time
from pathlib import Path

import pytest

from quantumnets.training import pipelines


@pytest.mark.perf
def test_tuned_preset_runtime(tmp_path):
    config = pipelines.load_preset("blobs-tuned")
    config["train"]["run_dir"] = str(tmp_path / "run")

    start = time.perf_counter()
    result = pipelines.run_pipeline(config)
    duration = time.perf_counter() - start

    assert duration <= 30.0
    tuning = json.loads(Path(result.tuning_path).read_text())
    assert tuning["iterations"] <= config["tune"]["max_iterations"]
    assert Path(result.summary_path).exists()
