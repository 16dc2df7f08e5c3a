import numpy as np
from typer.testing import CliRunner

from blurclust.config.schemas import BlurCfg, ClusterCfg
from blurclust.geometry.wires import BlockGeometry
from blurclust.io.cluster_store import read_clusters
from blurclust.io.hits_io import read_hits
from blurclust.physics.hits import Hit, WireID
from blurclust.pipelines.core import app, blurred_cluster, run_pipeline, split_views

GEOM = BlockGeometry(n_wires=1000, readout_window=5000, tpc_blocks=[[0]])

BLUR = BlurCfg(blur_wire=6, blur_tick=2, sigma_wire=3.0, sigma_tick=1.0)
CLUSTER = ClusterCfg(
    cluster_wire_distance=1,
    cluster_tick_distance=1,
    min_size=2,
    min_seed=1.0,
    charge_threshold=0.5,
    time_threshold=5.0,
)


def _hit(wire, t, q, rms=0.0, tpc=0, plane=2, cryostat=0):
    return Hit(wire=WireID(cryostat, tpc, plane, wire), peak_time=t, integral=q, rms=rms)


def _ids(hits):
    return {id(h) for h in hits}


def test_blur_bridges_nearby_hits():
    a, b = _hit(100, 200.0, 100.0), _hit(105, 200.0, 100.0)
    res = blurred_cluster([a, b], GEOM, BLUR, CLUSTER)
    assert len(res.clusters) == 1
    assert _ids(res.clusters[0]) == _ids([a, b])


def test_isolated_hit_is_not_a_cluster():
    res = blurred_cluster([_hit(300, 400.0, 50.0)], GEOM, BLUR, CLUSTER)
    # blurred cells may form a candidate, but it carries a single real hit
    assert res.clusters == []


def test_empty_view_gives_no_clusters():
    res = blurred_cluster([], GEOM, BLUR, CLUSTER)
    assert res.clusters == [] and res.hit_image is None


def test_time_separated_groups_do_not_merge():
    group_a = [_hit(w, 100.0, 10.0) for w in range(50, 55)]
    group_b = [_hit(w, 112.0, 10.0) for w in range(50, 55)]
    blur = BlurCfg(blur_wire=3, blur_tick=2, sigma_wire=2.0, sigma_tick=1.0)
    cluster = CLUSTER.model_copy(update=dict(cluster_tick_distance=15))
    res = blurred_cluster(group_a + group_b, GEOM, blur, cluster)

    groups = [_ids(c) for c in res.clusters]
    assert len(groups) == 2
    assert _ids(group_a) in groups
    assert _ids(group_b) in groups


def _random_hits(seed, n=80):
    rng = np.random.default_rng(seed)
    wires = rng.integers(0, 200, size=n)
    ticks = rng.uniform(0, 400, size=n)
    charges = rng.uniform(1.0, 20.0, size=n)
    widths = rng.uniform(0.0, 5.0, size=n)
    return [_hit(int(w), float(t), float(q), float(r)) for w, t, q, r in zip(wires, ticks, charges, widths)]


def test_random_event_partition_properties():
    hits = _random_hits(7)
    res = blurred_cluster(hits, GEOM, BlurCfg(), ClusterCfg())

    inputs = _ids(hits)
    seen = set()
    for cl in res.clusters:
        assert len(cl) >= ClusterCfg().min_size
        for h in cl:
            assert id(h) in inputs
            assert id(h) not in seen
            seen.add(id(h))


def test_clustering_is_deterministic():
    hits = _random_hits(11)
    first = blurred_cluster(hits, GEOM, BLUR, CLUSTER)
    second = blurred_cluster(hits, GEOM, BLUR, CLUSTER)
    assert [[id(h) for h in c] for c in first.clusters] == [[id(h) for h in c] for c in second.clusters]
    np.testing.assert_array_equal(first.blurred, second.blurred)


def test_split_views():
    hits = [
        _hit(10, 1.0, 1.0, tpc=1, plane=2),
        _hit(11, 1.0, 1.0, tpc=0, plane=2),
        _hit(12, 1.0, 1.0, tpc=0, plane=0),
    ]
    merged = split_views(hits, global_tpc_recon=True)
    assert list(merged) == [(0, 0), (0, 2)]
    assert merged[(0, 2)] == [hits[0], hits[1]]

    per_tpc = split_views(hits, global_tpc_recon=False)
    assert list(per_tpc) == [(0, 0, 0), (0, 0, 2), (0, 1, 2)]


def _write_inputs(tmp_path, export_png=True):
    rows = ["cryostat,tpc,plane,wire,peak_time,integral,rms"]
    rows += [f"0,0,2,{w},200.0,100.0,0.0" for w in range(100, 105)]
    rows.append("0,0,2,400,300.0,100.0,0.0")
    hits_csv = tmp_path / "hits.csv"
    hits_csv.write_text("\n".join(rows) + "\n")

    out_h5 = tmp_path / "out" / "clusters.h5"
    cfg = tmp_path / "run.toml"
    cfg.write_text(
        f"""
[run]
diagnostics_level = 0
progress = false

[io]
input_path = "{hits_csv.as_posix()}"
output_path = "{out_h5.as_posix()}"

[detector]
n_wires = 1000
readout_window_size = 5000
tpc_blocks = [[0]]

[blur]
blur_wire = 6
blur_tick = 2
sigma_wire = 3.0
sigma_tick = 1.0

[cluster]
cluster_wire_distance = 1
cluster_tick_distance = 1
min_size = 2
min_seed = 1.0
charge_threshold = 0.5
time_threshold = 5.0

[vis]
export_png = {"true" if export_png else "false"}
"""
    )
    return cfg, hits_csv, out_h5


def test_run_pipeline_end_to_end(tmp_path):
    cfg, hits_csv, out_h5 = _write_inputs(tmp_path)
    out = run_pipeline(str(cfg))
    assert out == out_h5 and out.exists()

    clusters = read_clusters(out)
    assert list(clusters) == ["c0_p2"]
    assert len(clusters["c0_p2"]) == 1
    assert sorted(clusters["c0_p2"][0].tolist()) == [0, 1, 2, 3, 4]

    # row indices point back into the input table
    hits = read_hits(hits_csv)
    assert {hits[i].wire.wire for i in clusters["c0_p2"][0]} == set(range(100, 105))

    assert (tmp_path / "out" / "clusters_png" / "c0_p2.png").exists()


def test_cli_png_flag_overrides_config(tmp_path):
    cfg, _, out_h5 = _write_inputs(tmp_path, export_png=True)
    result = CliRunner().invoke(app, [str(cfg), "--no-png"])
    assert result.exit_code == 0, result.output
    assert out_h5.exists()
    assert not (tmp_path / "out" / "clusters_png").exists()
