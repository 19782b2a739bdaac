import pickle
import zlib

import numpy as np
import pytest

from psyne.substrate_aware import (
    DynamicVectorMessage,
    GPUTensorMessage,
    SelfDescribingMessage,
    StringMessage,
)


class PlainSubstrate:
    pass


class RecordingSubstrate:
    def __init__(self):
        self.calls = []
        self.buffers = []

    def allocate_additional(self, nbytes):
        self.calls.append(("allocate_additional", nbytes))
        buffer = bytearray(nbytes)
        self.buffers.append(buffer)
        return buffer

    def on_message_destroyed(self):
        self.calls.append(("destroyed",))

    def compress_string(self, text):
        return zlib.compress(text.encode())

    def allocate_gpu_memory(self, nbytes):
        handle = object()
        self.calls.append(("gpu_alloc", nbytes))
        self.last_handle = handle
        return handle

    def deallocate_gpu_memory(self, handle):
        self.calls.append(("gpu_free", handle))

    def register_message_type(self, name):
        self.calls.append(("register", name))

    def serialize(self, payload):
        return pickle.dumps(payload)


def test_dynamic_vector_fallback_storage_is_zeroed():
    msg = DynamicVectorMessage(PlainSubstrate(), 3)
    assert len(msg) == 3
    assert list(msg.data) == [0.0, 0.0, 0.0]
    msg[1] = 2.5
    assert msg[1] == pytest.approx(2.5)


def test_dynamic_vector_initial_data_is_copied():
    values = [1.0, -2.5, 4.0]
    msg = DynamicVectorMessage(PlainSubstrate(), initial_data=values)
    assert len(msg) == len(values)
    assert list(msg.data) == values


def test_dynamic_vector_size_and_data_must_agree():
    with pytest.raises(ValueError):
        DynamicVectorMessage(PlainSubstrate(), 5, [1.0, 2.0])


def test_dynamic_vector_uses_substrate_memory():
    substrate = RecordingSubstrate()
    msg = DynamicVectorMessage(substrate, 3)
    assert substrate.calls == [("allocate_additional", 12)]
    msg[0] = 1.5
    assert np.frombuffer(substrate.buffers[0], dtype=np.float32)[0] == pytest.approx(1.5)


def test_dynamic_vector_initial_data_in_substrate_memory():
    substrate = RecordingSubstrate()
    msg = DynamicVectorMessage(substrate, initial_data=[3.0, 4.0])
    stored = np.frombuffer(substrate.buffers[0], dtype=np.float32)
    assert list(stored) == list(msg.data)


def test_dynamic_vector_empty_allocates_nothing():
    substrate = RecordingSubstrate()
    msg = DynamicVectorMessage(substrate)
    assert len(msg) == 0
    assert substrate.calls == []


def test_dynamic_vector_close_notifies_once():
    substrate = RecordingSubstrate()
    with DynamicVectorMessage(substrate) as msg:
        pass
    msg.close()
    assert substrate.calls.count(("destroyed",)) == 1
    assert msg.closed


def test_string_message_compresses_with_substrate():
    msg = StringMessage(RecordingSubstrate(), "hello world")
    assert msg.content == "hello world"
    assert zlib.decompress(msg.compressed_content) == b"hello world"
    msg.set_content("other text")
    assert zlib.decompress(msg.compressed_content) == b"other text"


def test_string_message_without_compression():
    msg = StringMessage(PlainSubstrate(), "abc")
    assert msg.content == "abc"
    assert msg.compressed_content == b""


def test_string_message_without_content_does_not_compress():
    msg = StringMessage(RecordingSubstrate())
    assert msg.content == ""
    assert msg.compressed_content == b""


def test_gpu_tensor_allocates_and_frees():
    substrate = RecordingSubstrate()
    msg = GPUTensorMessage(substrate, [2, 3])
    assert msg.shape == (2, 3)
    assert substrate.calls == [("gpu_alloc", 24)]
    handle = msg.gpu_data
    assert handle is substrate.last_handle
    msg.close()
    assert substrate.calls[-1] == ("gpu_free", handle)
    assert msg.gpu_data is None


def test_gpu_tensor_without_shape_allocates_nothing():
    substrate = RecordingSubstrate()
    with GPUTensorMessage(substrate) as msg:
        assert msg.shape == ()
    assert substrate.calls == []


def test_gpu_tensor_without_gpu_hooks():
    msg = GPUTensorMessage(PlainSubstrate(), [4])
    assert msg.gpu_data is None
    assert msg.num_elements == 4


def test_self_describing_registers_without_payload():
    substrate = RecordingSubstrate()
    msg = SelfDescribingMessage(substrate)
    assert substrate.calls == [("register", "SelfDescribing")]
    assert not msg.has_payload
    with pytest.raises(TypeError):
        msg.get_payload(int)


def test_self_describing_payload_round_trip():
    substrate = RecordingSubstrate()
    msg = SelfDescribingMessage(substrate, 42)
    assert ("register", "SelfDescribing") not in substrate.calls
    assert msg.get_payload(int) == 42
    assert msg.type_name == "int"
    assert pickle.loads(msg.serialized_data) == 42


def test_self_describing_wrong_type_raises():
    msg = SelfDescribingMessage(PlainSubstrate(), "text")
    with pytest.raises(TypeError):
        msg.get_payload(int)
    msg.set_payload([1, 2])
    assert msg.get_payload(list) == [1, 2]
    assert msg.type_name == "list"