import unittest

from src.common.pod import VolumeView
from src.webhook.patch import (
    PatchError,
    add_op,
    apply_patch,
    escape_segment,
    make_op,
    pointer,
    replace_op,
    serialize_patch,
    unescape_segment,
)

POD = {
    "apiVersion": "v1",
    "kind": "Pod",
    "metadata": {"name": "demo", "namespace": "default"},
    "spec": {"volumes": [{"name": "data", "emptyDir": {}}]},
}


class PointerTests(unittest.TestCase):
    def test_annotation_keys_are_escaped_inside_pointer(self) -> None:
        path = pointer("metadata", "annotations", "pvc-webhook/converted")
        self.assertEqual(path, "/metadata/annotations/pvc-webhook~1converted")

    def test_tilde_is_escaped_before_slash(self) -> None:
        self.assertEqual(escape_segment("a/b~c"), "a~1b~0c")

    def test_integer_parts_are_rendered(self) -> None:
        self.assertEqual(pointer("spec", "volumes", 3), "/spec/volumes/3")

    def test_escaped_keys_round_trip_through_pointer_text(self) -> None:
        for key in ("pvc-webhook.vol/data.size", "odd~key", "x~1y", "a/~/b", "~0~1"):
            path = pointer("metadata", "annotations", key)
            last = path.rsplit("/", 1)[1]
            self.assertEqual(unescape_segment(last), key)


class OperationTests(unittest.TestCase):
    def test_ops_carry_plain_values(self) -> None:
        op = replace_op("/spec/volumes/0", VolumeView(name="data", persistentVolumeClaim={"claimName": "c"}))
        self.assertEqual(
            op,
            {
                "op": "replace",
                "path": "/spec/volumes/0",
                "value": {"name": "data", "persistentVolumeClaim": {"claimName": "c"}},
            },
        )

    def test_value_is_copied(self) -> None:
        value = {"a": 1}
        op = add_op("/metadata/annotations", value)
        value["a"] = 2
        self.assertEqual(op["value"], {"a": 1})

    def test_unsupported_op_raises(self) -> None:
        with self.assertRaises(PatchError):
            make_op("remove", "/spec", None)

    def test_relative_path_raises(self) -> None:
        with self.assertRaises(PatchError):
            make_op("add", "metadata/annotations", {})

    def test_target_path_existence_is_not_checked(self) -> None:
        op = add_op("/does/not/exist", "x")
        self.assertEqual(op["path"], "/does/not/exist")

    def test_serialize_patch_outputs_json_array(self) -> None:
        data = serialize_patch([add_op("/metadata/labels", {})])
        self.assertEqual(data, b'[{"op":"add","path":"/metadata/labels","value":{}}]')

    def test_unserializable_value_raises_patch_error(self) -> None:
        with self.assertRaises(PatchError):
            serialize_patch([{"op": "add", "path": "/x", "value": object()}])


class ApplyPatchTests(unittest.TestCase):
    def test_apply_patch_does_not_modify_input(self) -> None:
        ops = [replace_op("/spec/volumes/0", {"name": "data", "persistentVolumeClaim": {"claimName": "c"}})]
        patched = apply_patch(POD, ops)
        self.assertIn("emptyDir", POD["spec"]["volumes"][0])
        self.assertEqual(patched["spec"]["volumes"][0]["persistentVolumeClaim"]["claimName"], "c")

    def test_child_of_missing_parent_is_rejected(self) -> None:
        ops = [add_op(pointer("metadata", "annotations", "k"), "v")]
        with self.assertRaises(PatchError):
            apply_patch(POD, ops)

    def test_parent_added_first_makes_child_valid(self) -> None:
        ops = [
            add_op(pointer("metadata", "annotations"), {}),
            add_op(pointer("metadata", "annotations", "pvc-webhook/converted"), "true"),
        ]
        patched = apply_patch(POD, ops)
        self.assertEqual(patched["metadata"]["annotations"], {"pvc-webhook/converted": "true"})


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
