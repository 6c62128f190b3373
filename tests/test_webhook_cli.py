import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import yaml
from typer.testing import CliRunner

from src.webhook import cli as webhook_cli

MANIFEST = """\
apiVersion: v1
kind: Pod
metadata:
  name: cache-0
spec:
  containers:
    - name: redis
      image: redis:7
  volumes:
    - name: cache
      emptyDir: {}
"""

DEFAULT_ARGS = ["--size", "1Gi", "--storage-class", "fast", "--access-modes", "ReadWriteOnce"]


class MutateFileCliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.manifest_path = Path(self.tmpdir.name) / "pod.yaml"
        self.manifest_path.write_text(MANIFEST, encoding="utf-8")
        self.runner = CliRunner()

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def _invoke(self, *args: str):
        return self.runner.invoke(
            webhook_cli.app,
            ["mutate-file", str(self.manifest_path), "--namespace", "cache", *DEFAULT_ARGS, *args],
        )

    def test_prints_patch(self) -> None:
        result = self._invoke()
        self.assertEqual(result.exit_code, 0, result.output)
        patch = json.loads(result.stdout)
        self.assertEqual(patch[0]["path"], "/spec/volumes/0")
        self.assertEqual(patch[0]["value"]["persistentVolumeClaim"]["claimName"], "pvc-cache-cache-0-cache")
        self.assertIn(
            {"op": "add", "path": "/metadata/annotations/pvc-webhook.vol~1cache.storageClass", "value": "fast"},
            patch,
        )

    def test_apply_prints_patched_manifest(self) -> None:
        result = self._invoke("--apply")
        self.assertEqual(result.exit_code, 0, result.output)
        patched = yaml.safe_load(result.stdout)
        self.assertEqual(
            patched["spec"]["volumes"][0],
            {"name": "cache", "persistentVolumeClaim": {"claimName": "pvc-cache-cache-0-cache"}},
        )
        self.assertEqual(patched["metadata"]["annotations"]["pvc-webhook.vol/cache.size"], "1Gi")
        self.assertEqual(patched["metadata"]["annotations"]["pvc-webhook/converted"], "true")

    def test_converted_manifest_yields_empty_patch(self) -> None:
        first = self._invoke("--apply")
        self.manifest_path.write_text(first.stdout, encoding="utf-8")
        result = self._invoke()
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(json.loads(result.stdout), [])

    def test_non_mapping_manifest_is_rejected(self) -> None:
        self.manifest_path.write_text("- just\n- a list\n", encoding="utf-8")
        result = self._invoke()
        self.assertNotEqual(result.exit_code, 0)


class ServeCliTests(unittest.TestCase):
    def test_unknown_log_level_is_a_usage_error(self) -> None:
        with mock.patch.object(webhook_cli.uvicorn, "run") as run:
            result = CliRunner().invoke(webhook_cli.app, ["serve", "--log-level", "chatty"])
        self.assertEqual(result.exit_code, 2)
        run.assert_not_called()


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
