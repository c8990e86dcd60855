import time
import logging
import argparse

from csgtracer.core.errors import SceneError
from csgtracer.core.material import CubeMap
from csgtracer.core.scene import RenderSettings
from csgtracer.scene_builders.demo_scene_builder import DemoSceneBuilder
from csgtracer.renderers.base_renderer import RendererFactory

# renderer modules register themselves on import
import csgtracer.renderers.cpu_renderer  # noqa: F401
import csgtracer.renderers.parallel_renderer  # noqa: F401


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='CSG / SDF ray tracer with Cook-Torrance shading')
    parser.add_argument('--renderer', '-r',
                        choices=RendererFactory.list_available(),
                        default='parallel_raytracer',
                        help='renderer to use')
    parser.add_argument('--scene',
                        choices=DemoSceneBuilder.SCENES,
                        default='csg',
                        help='demo scene to render')
    parser.add_argument('--width', '-w', type=int, default=400,
                        help='image width in pixels')
    parser.add_argument('--height', type=int, default=300,
                        help='image height in pixels')
    parser.add_argument('--depth', '-d', type=int, default=4,
                        help='maximum ray recursion depth')
    parser.add_argument('--samples', '-s', type=int, default=2,
                        help='indirect and glossy samples per hit')
    parser.add_argument('--shadow-samples', type=int, default=1,
                        help='shadow rays per light')
    parser.add_argument('--supersampling-depth', type=int, default=0,
                        help='maximum adaptive subdivision depth')
    parser.add_argument('--supersampling-grid', type=int, default=2,
                        help='sub-rays per footprint side')
    parser.add_argument('--threshold', type=float, default=0.02,
                        help='colour distance below which sub-samples count as equal')
    parser.add_argument('--seed', type=int, default=None,
                        help='seed for reproducible sampling')
    parser.add_argument('--workers', type=int, default=None,
                        help='worker processes (default: CPU count)')
    parser.add_argument('--skybox', metavar='DIR', default=None,
                        help='directory holding posx.jpg ... negz.jpg')
    parser.add_argument('--output', '-o', default='output.png',
                        help='output file name')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='log per row progress')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    try:
        settings = RenderSettings(
            width=args.width,
            height=args.height,
            max_depth=args.depth,
            path_samples=args.samples,
            soft_shadow_samples=args.shadow_samples,
            supersampling_depth=args.supersampling_depth,
            supersampling_grid=args.supersampling_grid,
            color_threshold=args.threshold,
            seed=args.seed,
            workers=args.workers,
        )

        print(f"Building scene: {args.scene}")
        scene_builder = DemoSceneBuilder()
        scene = scene_builder.build_scene(args.scene)
        if args.skybox:
            scene.skybox = CubeMap.load(args.skybox)
        camera = scene_builder.create_camera(args.width / args.height)
    except (SceneError, ValueError, OSError) as e:
        print(f"Could not set up the render: {e}")
        return 1

    print(f"Renderer: {args.renderer}")
    renderer = RendererFactory.create(args.renderer)
    print(f"Capabilities: {', '.join(renderer.get_capabilities())}")

    start_time = time.time()
    image = renderer.render(scene, camera, settings)
    elapsed = time.time() - start_time

    image.save(args.output)
    print(f"Saved image: {args.output}")

    minutes = int(elapsed // 60)
    seconds = elapsed % 60
    print(f"Total time: {minutes}m {seconds:.2f}s")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
