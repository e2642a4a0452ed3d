"""Directory-backed layer store.

A project directory holds one grayscale PNG per layer plus a ``project.json``
manifest with the print settings and per-layer placement::

    {
        "layer_height": 0.02,
        "bottom_layer_count": 4,
        "bottom_exposure_time": 25.0,
        "exposure_time": 2.5,
        "layer_overhead": 5.0,
        "resolution": [1440, 2560],
        "layers": [
            {"file": "00000.png", "position_z": 0.02, "exposure_time": 25.0},
            ...
        ]
    }
"""

import json
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from resinstack.layers.layer import Layer, round_height
from resinstack.layers.store import LayerStore
from resinstack.utils import ensure_dir, get_logger

logger = get_logger("layers.directory_store")

MANIFEST_NAME = "project.json"


class DirectoryLayerStore(LayerStore):
    """Layer store reading images lazily from a project directory."""

    def __init__(self, root: Path, resolution: Tuple[int, int], *args, **kwargs):
        self.root = Path(root)
        self._resolution = resolution
        super().__init__(*args, **kwargs)

    @property
    def resolution(self) -> Tuple[int, int]:
        return self._resolution

    def get_image(self, index: int) -> np.ndarray:
        layer = self._layers[index]
        if layer.image is not None:
            return layer.image.copy()
        return self._decode(layer.source_path)

    def _decode(self, path: Optional[Path]) -> np.ndarray:
        if path is None:
            raise ValueError("Layer has neither an image nor a source file")
        image = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
        if image is None:
            raise FileNotFoundError(f"Unable to decode layer image: {path}")
        return image

    @classmethod
    def open(cls, root: Union[str, Path]) -> "DirectoryLayerStore":
        """Open a project directory."""
        root = Path(root)
        manifest_path = root / MANIFEST_NAME
        if not manifest_path.exists():
            raise FileNotFoundError(f"Project manifest not found: {manifest_path}")

        data = json.loads(manifest_path.read_text())
        layer_height = round_height(data["layer_height"])
        bottom_exposure = float(data.get("bottom_exposure_time", 0.0))
        exposure = float(data.get("exposure_time", 0.0))

        layers = []
        previous_z = 0.0
        for index, entry in enumerate(data.get("layers", [])):
            position_z = round_height(entry.get("position_z", layer_height * (index + 1)))
            layers.append(Layer(
                index=index,
                position_z=position_z,
                height=round_height(position_z - previous_z),
                exposure_time=float(entry.get("exposure_time", exposure)),
                bottom_exposure_time=float(entry.get("bottom_exposure_time", bottom_exposure)),
                source_path=root / entry["file"],
            ))
            previous_z = position_z

        resolution = data.get("resolution")
        if resolution is None:
            if not layers:
                raise ValueError(f"Project has no layers: {root}")
            probe = cv2.imread(str(layers[0].source_path), cv2.IMREAD_GRAYSCALE)
            if probe is None:
                raise FileNotFoundError(f"Unable to decode layer image: {layers[0].source_path}")
            resolution = (probe.shape[1], probe.shape[0])

        logger.info(f"Opened {root} with {len(layers)} layers at {layer_height}mm")

        return cls(
            root,
            tuple(resolution),
            layers,
            layer_height,
            bottom_layer_count=int(data.get("bottom_layer_count", 0)),
            bottom_exposure_time=bottom_exposure,
            exposure_time=exposure,
            layer_overhead=float(data.get("layer_overhead", 5.0)),
            can_use_layer_position_z=bool(data.get("can_use_layer_position_z", True)),
            can_use_layer_exposure_time=bool(data.get("can_use_layer_exposure_time", True)),
        )

    def save(self, output_dir: Union[str, Path], max_workers: int = 4) -> Path:
        """Write every layer image and the manifest to ``output_dir``.

        Images are encoded by a bounded worker pool; the manifest is written
        last so a partially written directory is never a valid project.
        """
        if Path(output_dir).resolve() == self.root.resolve():
            raise ValueError("Saving over the source project is not supported, choose another directory")

        output_dir = ensure_dir(output_dir)
        names = [f"{layer.index:05d}.png" for layer in self._layers]

        def write(index: int) -> None:
            image = self.get_image(index)
            if not cv2.imwrite(str(output_dir / names[index]), image):
                raise OSError(f"Unable to write layer image {names[index]}")

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            list(pool.map(write, range(len(self._layers))))

        manifest = {
            "layer_height": self.layer_height,
            "bottom_layer_count": self.bottom_layer_count,
            "bottom_exposure_time": self.bottom_exposure_time,
            "exposure_time": self.exposure_time,
            "layer_overhead": self.layer_overhead,
            "resolution": list(self._resolution),
            "can_use_layer_position_z": self.can_use_layer_position_z,
            "can_use_layer_exposure_time": self.can_use_layer_exposure_time,
            "layers": [
                {
                    "file": name,
                    "position_z": layer.position_z,
                    "exposure_time": layer.exposure_time,
                    "bottom_exposure_time": layer.bottom_exposure_time,
                }
                for name, layer in zip(names, self._layers)
            ],
        }
        manifest_path = output_dir / MANIFEST_NAME
        manifest_path.write_text(json.dumps(manifest, indent=2))
        logger.info(f"Saved {len(self._layers)} layers to {output_dir}")
        return manifest_path


def write_project(
    root: Union[str, Path],
    images,
    layer_height: float,
    exposure_time: float = 2.5,
    bottom_exposure_time: float = 25.0,
    bottom_layer_count: int = 0,
    layer_overhead: float = 5.0,
) -> Path:
    """Write a uniform-height project directory from a stack of images."""
    root = ensure_dir(root)
    layers = []
    for index, image in enumerate(images):
        name = f"{index:05d}.png"
        if not cv2.imwrite(str(root / name), np.asarray(image, dtype=np.uint8)):
            raise OSError(f"Unable to write layer image {name}")
        layers.append({
            "file": name,
            "position_z": round_height(layer_height * (index + 1)),
            "exposure_time": bottom_exposure_time if index < bottom_layer_count else exposure_time,
        })

    height, width = np.asarray(images[0]).shape[:2]
    manifest = {
        "layer_height": layer_height,
        "bottom_layer_count": bottom_layer_count,
        "bottom_exposure_time": bottom_exposure_time,
        "exposure_time": exposure_time,
        "layer_overhead": layer_overhead,
        "resolution": [width, height],
        "layers": layers,
    }
    manifest_path = root / MANIFEST_NAME
    manifest_path.write_text(json.dumps(manifest, indent=2))
    return manifest_path
