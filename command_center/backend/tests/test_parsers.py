"""Log progress and host metrics parsing."""

from command_center.backend.services.metrics import (
    parse_gpus,
    parse_memory,
    parse_network,
    parse_storage,
)
from command_center.backend.utils.log_progress import parse_log_progress, progress_percent


class TestLogProgress:
    def test_epoch_with_metrics(self):
        log = "\n".join(
            [
                "Epoch 1/10 loss: 0.9000 acc: 0.5000",
                "Epoch 2/10 loss: 0.7000 acc: 0.6500 lr: 1e-4",
            ]
        )
        progress = parse_log_progress(log)
        assert progress["current"] == 2
        assert progress["total"] == 10
        assert progress["message"].startswith("Epoch 2/10")
        assert progress["metrics"]["loss"] == 0.7
        assert progress["metrics"]["accuracy"] == 0.65
        assert progress["metrics"]["learning_rate"] == 1e-4

    def test_step_of(self):
        progress = parse_log_progress("step 150 of 1000")
        assert (progress["current"], progress["total"]) == (150, 1000)

    def test_percentage(self):
        progress = parse_log_progress("Downloading model... 45%")
        assert (progress["current"], progress["total"]) == (45, 100)

    def test_epoch_preferred_over_percentage(self):
        progress = parse_log_progress("Epoch 3/5 [=====>    ] 60%")
        assert (progress["current"], progress["total"]) == (3, 5)

    def test_metrics_only(self):
        progress = parse_log_progress("val_loss=0.3125")
        assert "current" not in progress
        assert progress["metrics"]["val_loss"] == 0.3125

    def test_nothing_recognizable(self):
        assert parse_log_progress("starting server on :8188") is None
        assert parse_log_progress("") is None

    def test_percent(self):
        assert progress_percent(2, 10) == 20
        assert progress_percent(5, 0) is None
        assert progress_percent(None, 10) is None


class TestMetricParsers:
    def test_gpus_without_memory_columns(self):
        gpus = parse_gpus("0, NVIDIA GB10, 87, 61, 45.20\n")
        assert gpus == [
            {
                "index": 0,
                "name": "NVIDIA GB10",
                "gpuUtilization": 87.0,
                "temperature": 61,
                "powerDraw": 45.2,
            }
        ]

    def test_gpu_not_supported_values(self):
        gpus = parse_gpus("0, NVIDIA GB10, 12, 40, [N/A]")
        assert gpus[0]["powerDraw"] == 0.0

    def test_no_gpus(self):
        assert parse_gpus("") == []

    def test_memory(self):
        memory = parse_memory(
            "Mem:          122572       20480       90000         100       12092      101000"
        )
        assert memory == {"total": 122572, "used": 20480, "free": 90000, "available": 101000}

    def test_network(self):
        line = (
            "  eth0: 123456789  98765    0    0    0     0          0         0 "
            "987654321  54321    0    0    0     0       0          0"
        )
        network = parse_network(line)
        assert network == {
            "interface": "eth0",
            "rxBytes": 123456789,
            "rxPackets": 98765,
            "txBytes": 987654321,
            "txPackets": 54321,
        }

    def test_network_missing(self):
        assert parse_network("")["interface"] == "unknown"

    def test_storage(self):
        storage = parse_storage("/dev/nvme0n1p2  3600G  1200G  2400G  34% /home")
        assert storage == {
            "total": 3600,
            "used": 1200,
            "available": 2400,
            "usedPercent": 34,
            "mountPoint": "/home",
        }
