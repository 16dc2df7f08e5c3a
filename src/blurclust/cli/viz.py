from __future__ import annotations

import typer
from pathlib import Path
from typing import Optional

from blurclust.io.cluster_store import read_view_image
from blurclust.vis.stages import save_image_png

app = typer.Typer(help="Blurred clustering visualization tools")

@app.command("h5-to-png")
def h5_to_png(
    h5_path: str = typer.Argument(..., help="Path to HDF5 file written by the clustering pipeline"),
    view: str = typer.Argument(..., help="View group under /clusters, e.g. c0_p2"),
    dataset: str = typer.Option("blurred", "--dataset", "-d", help="'image' or 'blurred'"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output PNG path (defaults to <file>_<view>_<dataset>.png)"),
):
    """Render a stored view image to a PNG."""
    img = read_view_image(h5_path, view, dataset)
    out_png = out or str(Path(h5_path).with_name(f"{Path(h5_path).stem}_{view}_{dataset}.png"))
    save_image_png(img, out_png, title=f"{Path(h5_path).name} : {view}/{dataset}")
    typer.echo(f"Wrote {out_png}")

if __name__ == "__main__":
    app()
