import random

import jase93
import jase93_tool


def test_encode_decode_files(tmp_path):
    data = random.Random(0).randbytes(20000)
    raw = tmp_path / "raw.bin"
    encoded = tmp_path / "raw.j93"
    decoded = tmp_path / "raw.out"
    raw.write_bytes(data)

    assert jase93_tool.main(["--chunk-size", "333", "encode", "-i", str(raw), "-o", str(encoded)]) == 0
    assert encoded.read_bytes() == jase93.encode(data)

    assert jase93_tool.main(["--chunk-size", "97", "decode", "-i", str(encoded), "-o", str(decoded)]) == 0
    assert decoded.read_bytes() == data


def test_decode_invalid_file(tmp_path):
    encoded = tmp_path / "bad.j93"
    encoded.write_bytes(b'(z("')
    assert jase93_tool.main(["decode", "-i", str(encoded), "-o", str(tmp_path / "out")]) == 1


def test_config_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("chunk_size: 512\nbench:\n  size: 1000\n")
    config = jase93_tool.Config.from_yaml(str(path))
    assert config.chunk_size == 512
    assert config.bench.size == 1000
    assert config.bench.seed == 0


def test_config_empty_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert jase93_tool.Config.from_yaml(str(path)) == jase93_tool.Config()


def test_bench(tmp_path, capsys):
    path = tmp_path / "config.yaml"
    path.write_text("bench:\n  size: 2000\n  seed: 7\n")
    assert jase93_tool.main(["--config", str(path), "bench"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert [line.split(":")[0] for line in lines] == ["best", "worst", "average"]
    assert "ratio=1.14" in lines[0]


def test_bad_chunk_size():
    assert jase93_tool.main(["--chunk-size", "0", "fuzz", "-n", "1"]) == 2


def test_fuzz():
    assert jase93_tool.main(["fuzz", "--max-length", "1"]) == 0
