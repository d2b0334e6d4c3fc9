"""
End-to-end tests for the generation pipeline.

Small trees (a few layers) exercise every stage in milliseconds; the
full 14-layer scenario is marked slow.
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from sigmatree import (
    DirectoryTreeStore,
    LeafGenerationError,
    MemoryTreeStore,
    SEED_SIZE,
    Sha1Prng,
    Stage,
    TreeGenerator,
    TreeParams,
    build_leaf_layer,
    encode_address,
    fold_in_memory,
    generate,
    generate_from_scratch_file,
    generate_scratch_file,
    is_valid_address,
    leaf_hashes,
)
from sigmatree.errors import ConfigurationError
from sigmatree.seeds import SeedDeriver

KEY = "correct horse battery staple"

DEPTH_4_ROOT = "d6xfJAvR0ryYsYfVg04u6qplpIpIydeOzPLHKBNYdcc="
DEPTH_4_ADDRESS = "F1O6WF6JAL2HJLZGFRQ7KYGTRO5KVGLJEKJVYF"

FIRST_LEAF = "ymy2PXwWx2w8YgE7RVEkTPdkNhDOECQA2KlTr4DcLVk="
DEPTH_14_LAST_LEAF = "uQlJDVouRjsRZZHLrVPjSTI3pRwtMpl06WWY768izlc="
DEPTH_14_ROOT = "6I5hy4jtgtRU1gR3GDWv5X+dtvlAOhXvmnmH7Ll0eAg="
DEPTH_14_ADDRESS = "S15CHGDS4I5WBNIVGWAR3RQNNP4V7Z3NXZDS5W"


class FailingGenerator(Sha1Prng):
    """Seeds derive normally; every leaf key draw fails."""

    def __init__(self, seed):
        if len(seed) == SEED_SIZE:
            raise RuntimeError("leaf generator broke")
        super().__init__(seed)


def expected_leaves(key, count):
    return leaf_hashes(SeedDeriver(key).batch(count))


# =============================================================================
# PARAMETERS
# =============================================================================

class TestTreeParams:

    def test_sizes(self):
        params = TreeParams(14)
        assert params.leaf_count == 8192
        assert params.layer_size(0) == 8192
        assert params.layer_size(13) == 1
        assert params.is_standard

    def test_workers_clamped(self):
        assert TreeParams(5, workers=0).workers == 1
        assert TreeParams(5, workers=-3).workers == 1

    def test_wave_count(self):
        assert TreeParams(5, workers=3, batch_size=2).wave_count == 3

    @pytest.mark.parametrize("kwargs", [
        {"num_layers": 1},
        {"num_layers": 5, "batch_size": 0},
        {"num_layers": 5, "executor": "gpu"},
        {"num_layers": 5, "workers": 64, "batch_size": 4096, "max_in_flight_bytes": 1 << 20},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            TreeParams(**kwargs)

    def test_layer_out_of_range(self):
        with pytest.raises(IndexError):
            TreeParams(5).layer_size(5)


# =============================================================================
# LEAF LAYER
# =============================================================================

class TestBuildLeafLayer:
    """Waves of parallel workers produce the leaf layer in index order."""

    @pytest.mark.parametrize("workers,batch_size", [(1, 512), (1, 1), (3, 2), (4, 3), (16, 1)])
    def test_order_independent_of_workers(self, tmp_path, workers, batch_size):
        sink_path = tmp_path / "leaves"
        params = TreeParams(5, workers=workers, batch_size=batch_size, executor="thread")
        with open(sink_path, "w") as sink:
            assert build_leaf_layer(KEY, params, sink) == 16
        assert sink_path.read_text().splitlines() == expected_leaves(KEY, 16)

    def test_process_pool(self, tmp_path):
        sink_path = tmp_path / "leaves"
        params = TreeParams(4, workers=2, batch_size=3, executor="process")
        with open(sink_path, "w") as sink:
            build_leaf_layer(KEY, params, sink)
        assert sink_path.read_text().splitlines() == expected_leaves(KEY, 8)

    def test_wave_stats(self, tmp_path):
        waves = []
        params = TreeParams(5, workers=2, batch_size=3, executor="thread")
        with open(tmp_path / "leaves", "w") as sink:
            build_leaf_layer(KEY, params, sink, on_wave=waves.append)
        assert [w.keys for w in waves] == [6, 6, 4]
        assert [w.keys_done for w in waves] == [6, 12, 16]
        assert all(w.keys_total == 16 for w in waves)
        assert all(w.keys_per_second > 0 for w in waves)

    def test_worker_failure(self, tmp_path):
        params = TreeParams(4, workers=2, batch_size=2, executor="thread")
        with open(tmp_path / "leaves", "w") as sink:
            with pytest.raises(LeafGenerationError, match="leaf generator broke"):
                build_leaf_layer(KEY, params, sink, generator=FailingGenerator)


# =============================================================================
# PIPELINE
# =============================================================================

class TestGenerate:

    def test_small_tree(self, tmp_path):
        store = DirectoryTreeStore(tmp_path)
        result = generate(KEY, 5, workers=2, batch_size=3, store=store, executor="thread")

        assert result.ok, result.error
        assert result.stage is Stage.DONE
        assert result.stored is True
        assert result.num_layers == 5

        layers = fold_in_memory(expected_leaves(KEY, 16))
        assert result.root == layers[-1][0]
        assert result.address == encode_address(result.root, 5)
        assert result.address.startswith("F1")
        assert is_valid_address(result.address)

        for i, layer in enumerate(layers):
            assert store.read_layer(result.address, i) == layer
        assert store.read_metadata(result.address).layers == 5

    def test_known_answer(self):
        result = generate(KEY, 4, workers=2, batch_size=3, store=MemoryTreeStore(), executor="thread")
        assert result.root == DEPTH_4_ROOT
        assert result.address == DEPTH_4_ADDRESS
        assert expected_leaves(KEY, 1) == [FIRST_LEAF]

    def test_deterministic_across_worker_counts(self, tmp_path):
        a = generate(KEY, 6, workers=1, batch_size=512, store=MemoryTreeStore(), executor="thread")
        b = generate(KEY, 6, workers=5, batch_size=3, store=MemoryTreeStore(), executor="thread")
        assert a.ok and b.ok
        assert a.address == b.address
        assert a.root == b.root

    def test_different_keys(self):
        a = generate("key one", 4, store=MemoryTreeStore(), executor="thread")
        b = generate("key two", 4, store=MemoryTreeStore(), executor="thread")
        assert a.address != b.address

    def test_second_run_is_noop(self, tmp_path):
        store = DirectoryTreeStore(tmp_path)
        first = generate(KEY, 4, store=store, executor="thread")
        layer0 = (tmp_path / first.address / "layer0.lyr").read_text()

        second = generate(KEY, 4, workers=3, batch_size=1, store=store, executor="thread")

        assert second.ok
        assert second.stored is False
        assert second.address == first.address
        assert store.addresses() == [first.address]
        assert (tmp_path / first.address / "layer0.lyr").read_text() == layer0
        assert [p.name for p in tmp_path.iterdir()] == [first.address]

    def test_worker_failure_keeps_workspace(self, tmp_path):
        store = DirectoryTreeStore(tmp_path)
        result = generate(
            KEY, 4, workers=2, batch_size=2,
            store=store, generator=FailingGenerator, executor="thread"
        )
        assert not result.ok
        assert result.stage is Stage.LEAF_GENERATION
        assert "LeafGenerationError" in result.error
        assert result.workspace is not None
        assert Path(result.workspace).exists()
        assert store.addresses() == []

    def test_storage_failure(self, tmp_path, monkeypatch):
        """Default store under an unwritable SIGMATREE_HOME."""
        blocker = tmp_path / "file"
        blocker.write_text("")
        monkeypatch.setenv("SIGMATREE_HOME", str(blocker / "addresses"))

        result = generate(KEY, 4, executor="thread")

        assert not result.ok
        assert result.stage is Stage.SEEDING
        assert "StorageError" in result.error

    def test_missing_key(self):
        result = generate("", 4, store=MemoryTreeStore())
        assert not result.ok
        assert result.stage is Stage.INIT

    def test_bad_params_returned_not_raised(self):
        result = generate(KEY, 1, store=MemoryTreeStore())
        assert not result.ok
        assert "ConfigurationError" in result.error


class TestSharedGenerator:
    """One TreeGenerator serving overlapping requests."""

    def test_requests_keep_their_own_stage(self):
        gen = TreeGenerator(MemoryTreeStore())
        nested = []

        def on_wave(stats):
            if stats.keys_total == 8:
                nested.append(gen.generate(KEY, TreeParams(3, executor="thread")))
                raise RuntimeError("interrupted")

        gen.on_wave = on_wave
        outer = gen.generate(KEY, TreeParams(4, executor="thread"))

        assert nested[0].ok
        assert nested[0].stage is Stage.DONE
        assert not outer.ok
        assert outer.stage is Stage.LEAF_GENERATION
        assert "interrupted" in outer.error

    def test_concurrent_requests(self):
        gen = TreeGenerator(MemoryTreeStore())
        params = TreeParams(4, executor="thread")
        with ThreadPoolExecutor(max_workers=2) as pool:
            good = pool.submit(gen.generate, KEY, params)
            missing = pool.submit(gen.generate, "", params)

        assert good.result().ok
        assert good.result().address == DEPTH_4_ADDRESS
        assert missing.result().stage is Stage.INIT
        assert not missing.result().ok


class TestScratchFiles:
    """Leaf layer written separately, tree finished later."""

    def test_scratch_then_finish(self, tmp_path):
        scratch = tmp_path / "scratch.txt"
        written = generate_scratch_file(scratch, KEY, 5, workers=2, batch_size=5, executor="thread")
        assert written.ok
        assert written.address is None
        assert scratch.read_text().splitlines() == expected_leaves(KEY, 16)

        store = DirectoryTreeStore(tmp_path / "addresses")
        finished = generate_from_scratch_file(scratch, 5, store=store)
        direct = generate(KEY, 5, store=MemoryTreeStore(), executor="thread")

        assert finished.ok
        assert finished.address == direct.address
        assert not scratch.exists()
        assert store.read_layer(finished.address, 0) == expected_leaves(KEY, 16)

    def test_wrong_depth_for_scratch(self, tmp_path):
        scratch = tmp_path / "scratch.txt"
        generate_scratch_file(scratch, KEY, 4, executor="thread")
        result = generate_from_scratch_file(scratch, 5, store=DirectoryTreeStore(tmp_path / "a"))
        assert not result.ok
        assert result.stage is Stage.FOLDING
        assert "TreeShapeError" in result.error

    def test_missing_scratch(self, tmp_path):
        result = generate_from_scratch_file(
            tmp_path / "nope", 5, store=DirectoryTreeStore(tmp_path / "a")
        )
        assert not result.ok
        assert "StorageError" in result.error


# =============================================================================
# SCENARIO
# =============================================================================

@pytest.mark.slow
class TestScenario:
    """Full 14-layer tree: 8192 leaves, 13 folds, pinned S1 address."""

    def test_depth_14(self, tmp_path):
        store = DirectoryTreeStore(tmp_path)
        result = generate(KEY, 14, workers=4, batch_size=512, store=store, executor="process")

        assert result.ok, result.error
        assert result.address == DEPTH_14_ADDRESS
        assert result.root == DEPTH_14_ROOT
        assert result.address.startswith("S1")
        assert len(result.address) == 38
        assert is_valid_address(result.address)

        leaves = store.read_layer(result.address, 0)
        assert len(leaves) == 8192
        assert leaves[0] == FIRST_LEAF
        assert leaves[8191] == DEPTH_14_LAST_LEAF
        for i in range(14):
            assert len(store.read_layer(result.address, i)) == 1 << (13 - i)
        assert store.read_layer(result.address, 13) == [result.root]
        assert store.read_metadata(result.address).layers == 14
