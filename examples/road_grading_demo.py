"""
Demo script for road grading.

This example demonstrates the complete smoothing pipeline:
1. Create hilly terrain and paint a road mask with a T-junction
2. Grade the roads into the terrain with smooth_roads
3. Add a gravel track as a second material and harmonize across materials
4. Save the graded heightmap and debug images
"""

import tempfile
from pathlib import Path

import numpy as np

from roadgrade.core.io import save_heightmap
from roadgrade.core.logging_config import setup_logging
from roadgrade.core.network import MaterialRoadInput
from roadgrade.core.smoother import MultiMaterialRoadSmoother, smooth_roads
from roadgrade.models.geometry import RoadPath
from roadgrade.models.parameters import RoadSmoothingParameters, SplineRoadParameters


def main():
    """Run road grading demo."""
    setup_logging(log_level="WARNING")
    output_dir = Path(tempfile.mkdtemp(prefix="roadgrade_demo_"))

    print("=" * 60)
    print("Road Grading Demo")
    print("=" * 60)

    # 1. Terrain and road mask
    print("\n1. Creating terrain (300m x 300m, 1m per pixel)...")
    rows, cols = np.mgrid[0:300, 0:300].astype(np.float64)
    terrain = 100.0 + 6.0 * np.sin(cols / 40.0) + 4.0 * np.cos(rows / 30.0) + 0.02 * cols
    print(f"   - Elevation range: {terrain.min():.1f}m - {terrain.max():.1f}m")

    mask = np.zeros(terrain.shape, dtype=bool)
    mask[146:154, 20:280] = True  # Main road, west to east
    mask[154:280, 146:154] = True  # Side road, south from the main road
    print(f"   - Road pixels: {int(mask.sum())}")

    # 2. Grade the asphalt roads
    print("\n2. Grading asphalt roads...")
    asphalt = RoadSmoothingParameters(
        road_width_meters=8.0,
        terrain_affected_range_meters=12.0,
        osm_road_type="secondary",
        spline=SplineRoadParameters(global_leveling_strength=0.2),
        export_spline_debug_image=True,
        export_junction_debug_image=True,
        debug_output_directory=output_dir,
    )
    result = smooth_roads(terrain, asphalt, 1.0, mask=mask, material_name="asphalt")

    stats = result.statistics
    print(f"   - Splines: {len(result.geometry.splines)}")
    print(f"   - Junctions: {[j.junction_type.value for j in result.geometry.junctions]}")
    print(f"   - Strategy: {stats.strategy}")
    print(f"   - Cut: {stats.total_cut_volume:.0f}m3, fill: {stats.total_fill_volume:.0f}m3")
    print(f"   - Max road slope: {stats.max_road_slope:.2f} deg")
    print(f"   - Constraints met: {stats.meets_all_constraints}")

    # 3. Two materials in one network
    print("\n3. Adding a gravel track...")
    gravel = RoadSmoothingParameters(road_width_meters=4.0, terrain_affected_range_meters=6.0, osm_road_type="track")
    track = RoadPath(np.array([[150.0, 20.0], [150.0, 146.0]]))
    materials = [
        MaterialRoadInput("asphalt", RoadSmoothingParameters(osm_road_type="secondary"), mask=mask),
        MaterialRoadInput("gravel", gravel, paths=[track]),
    ]
    combined = MultiMaterialRoadSmoother().smooth_all_roads(terrain, materials, 1.0)

    print(f"   - Materials: {combined.geometry.materials}")
    print(f"   - Junctions: {len(combined.geometry.junctions)}")
    print(f"   - Pixels modified: {combined.statistics.pixels_modified}")

    # 4. Save
    print("\n4. Saving results...")
    path = save_heightmap(output_dir / "graded.tif", combined.modified_heightmap, meters_per_pixel=1.0)
    print(f"   - Heightmap: {path}")
    for image in sorted(output_dir.glob("*.png")):
        print(f"   - Debug image: {image.name}")

    print("\n" + "=" * 60)
    print("Demo complete")
    print("=" * 60)


if __name__ == "__main__":
    main()
