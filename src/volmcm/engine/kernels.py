"""Taichi kernels for Monte Carlo multiple scattering.

Two kernels run over the padded 2D pixel domain:

    mcm_reset   spawn one photon per pixel from the camera into generation 0
    mcm_step    advance every photon by up to ``steps`` collision events,
                reading one generation and writing the other

The volume occupies the unit cube [0, 1]^3. A photon travels by
exponentially distributed free paths. Inside the cube each collision is
classified from the transfer-function sample (RGBA):

    P_null       = 1 - alpha
    P_scattering = alpha * max(r, g, b)    (0 once max_bounces is reached)
    P_absorption = 1 - P_null - P_scattering

A photon that leaves the cube after at least one scattering event carries
``transmittance * environment`` back to its pixel; one that never scattered
saw only background, which is black. Absorbed and escaped photons both end
the path: the pixel's radiance running mean is updated and a new photon is
spawned from the camera. Padding columns are copied through unchanged.

Position w is 1 for a photon whose camera ray entered the cube and 0 for a
miss. A missed photon finishes on its next event without moving.
"""

import taichi as ti
import taichi.math as tm

from volmcm.engine.sampling import (
    pixel_state,
    random_float,
    sample_free_path,
    sample_henyey_greenstein,
)

vec3 = tm.vec3
vec4 = tm.vec4

# Array annotations shared by both kernels
Vec4Array2D = ti.types.ndarray(dtype=vec4, ndim=2)
IntArray2D = ti.types.ndarray(dtype=ti.i32, ndim=2)
FloatArray1D = ti.types.ndarray(dtype=ti.f32, ndim=1)
FloatArray3D = ti.types.ndarray(dtype=ti.f32, ndim=3)
Vec4Array1D = ti.types.ndarray(dtype=vec4, ndim=1)

# Direction components below this are nudged to keep slab tests finite
DIRECTION_EPSILON = 1e-8


# =============================================================================
# Camera Rays
# =============================================================================


@ti.func
def load_unproject(unproject: ti.template()) -> tm.mat4:
    """Rebuild the inverse projection-view-model from column-major floats."""
    m = tm.mat4(0.0)
    for row in ti.static(range(4)):
        for col in ti.static(range(4)):
            m[row, col] = unproject[col * 4 + row]
    return m


@ti.func
def camera_ray(m: tm.mat4, i: ti.i32, j: ti.i32, width: ti.i32, height: ti.i32, state: ti.u32):
    """Jittered ray through pixel (i, j) in volume space.

    Unprojects the pixel on the near (z = -1) and far (z = +1) clip planes.

    Returns:
        A tuple (new_state, origin, direction).
    """
    rng, jitter_x = random_float(state)
    rng, jitter_y = random_float(rng)

    ndc_x = (ti.cast(i, ti.f32) + jitter_x) / ti.cast(width, ti.f32) * 2.0 - 1.0
    ndc_y = (ti.cast(j, ti.f32) + jitter_y) / ti.cast(height, ti.f32) * 2.0 - 1.0

    near = m @ vec4(ndc_x, ndc_y, -1.0, 1.0)
    far = m @ vec4(ndc_x, ndc_y, 1.0, 1.0)

    origin = vec3(near[0], near[1], near[2]) / near[3]
    target = vec3(far[0], far[1], far[2]) / far[3]
    return rng, origin, tm.normalize(target - origin)


@ti.func
def intersect_unit_cube(origin: vec3, direction: vec3):
    """Slab test against [0, 1]^3.

    Returns:
        A tuple (t_near, t_far); the ray misses when t_near > t_far.
    """
    inv_dir = vec3(0.0)
    for k in ti.static(range(3)):
        d = direction[k]
        if ti.abs(d) < DIRECTION_EPSILON:
            d = DIRECTION_EPSILON
        inv_dir[k] = 1.0 / d

    t0 = (vec3(0.0) - origin) * inv_dir
    t1 = (vec3(1.0) - origin) * inv_dir
    t_small = tm.min(t0, t1)
    t_large = tm.max(t0, t1)

    t_near = ti.max(ti.max(t_small[0], t_small[1]), t_small[2])
    t_far = ti.min(ti.min(t_large[0], t_large[1]), t_large[2])
    return t_near, t_far


@ti.func
def spawn_photon(m: tm.mat4, i: ti.i32, j: ti.i32, width: ti.i32, height: ti.i32, state: ti.u32):
    """New photon at the point where the pixel's camera ray enters the volume.

    A ray that misses the volume gets position -1 and ``hit = 0``. The
    step kernel retires such a photon with zero contribution before it
    moves, so it can never drift into the cube.

    Returns:
        A tuple (new_state, position, direction, hit).
    """
    rng, origin, direction = camera_ray(m, i, j, width, height, state)
    t_near, t_far = intersect_unit_cube(origin, direction)

    entry = ti.max(t_near, 0.0)
    position = vec3(-1.0)
    hit = 0
    if entry <= t_far:
        position = origin + entry * direction
        hit = 1
    return rng, position, direction, hit


@ti.func
def outside_unit_cube(p: vec3) -> ti.i32:
    outside = 0
    if ti.min(p[0], p[1], p[2]) < 0.0 or ti.max(p[0], p[1], p[2]) > 1.0:
        outside = 1
    return outside


# =============================================================================
# Volume and Transfer Function Lookup
# =============================================================================


@ti.func
def voxel(volume: ti.template(), x: ti.i32, y: ti.i32, z: ti.i32) -> ti.f32:
    """Clamped voxel fetch."""
    cx = ti.min(ti.max(x, 0), volume.shape[0] - 1)
    cy = ti.min(ti.max(y, 0), volume.shape[1] - 1)
    cz = ti.min(ti.max(z, 0), volume.shape[2] - 1)
    return volume[cx, cy, cz]


@ti.func
def sample_density(volume: ti.template(), p: vec3, linear: ti.i32) -> ti.f32:
    """Density at volume-space point ``p`` (nearest or trilinear)."""
    dims = vec3(
        ti.cast(volume.shape[0], ti.f32),
        ti.cast(volume.shape[1], ti.f32),
        ti.cast(volume.shape[2], ti.f32),
    )
    density = 0.0
    if linear == 0:
        cell = ti.floor(p * dims)
        density = voxel(volume, ti.cast(cell[0], ti.i32), ti.cast(cell[1], ti.i32), ti.cast(cell[2], ti.i32))
    else:
        g = p * dims - 0.5
        base = ti.floor(g)
        f = g - base
        bx = ti.cast(base[0], ti.i32)
        by = ti.cast(base[1], ti.i32)
        bz = ti.cast(base[2], ti.i32)
        for dx in ti.static(range(2)):
            for dy in ti.static(range(2)):
                for dz in ti.static(range(2)):
                    wx = dx * f[0] + (1 - dx) * (1.0 - f[0])
                    wy = dy * f[1] + (1 - dy) * (1.0 - f[1])
                    wz = dz * f[2] + (1 - dz) * (1.0 - f[2])
                    density += wx * wy * wz * voxel(volume, bx + dx, by + dy, bz + dz)
    return density


@ti.func
def sample_transfer_function(transfer_function: ti.template(), density: ti.f32) -> vec4:
    """RGBA for a normalized density, interpolating between entries."""
    n = transfer_function.shape[0]
    x = ti.min(ti.max(density, 0.0), 1.0) * ti.cast(n - 1, ti.f32)
    i0 = ti.min(ti.cast(ti.floor(x), ti.i32), n - 1)
    i1 = ti.min(i0 + 1, n - 1)
    f = x - ti.cast(i0, ti.f32)
    return transfer_function[i0] * (1.0 - f) + transfer_function[i1] * f


# =============================================================================
# Kernels
# =============================================================================


@ti.kernel
def mcm_reset(
    width: ti.i32,
    height: ti.i32,
    seed: ti.u32,
    unproject: FloatArray1D,
    position: Vec4Array2D,
    direction: Vec4Array2D,
    transmittance: Vec4Array2D,
    radiance: Vec4Array2D,
    samples: IntArray2D,
    bounces: IntArray2D,
):
    """Initialize one generation with fresh camera photons."""
    for i, j in ti.ndrange(position.shape[0], position.shape[1]):
        m = load_unproject(unproject)
        stride = position.shape[0]
        pos = vec4(0.0)
        heading = vec4(0.0)
        trans = vec4(0.0)
        if i < width:
            state = pixel_state(seed, i, j, stride)
            _, p, d, hit = spawn_photon(m, i, j, width, height, state)
            pos = vec4(p[0], p[1], p[2], ti.cast(hit, ti.f32))
            heading = vec4(d[0], d[1], d[2], 0.0)
            trans = vec4(1.0, 1.0, 1.0, 0.0)

        position[i, j] = pos
        direction[i, j] = heading
        transmittance[i, j] = trans
        radiance[i, j] = vec4(0.0)
        samples[i, j] = 0
        bounces[i, j] = 0


@ti.kernel
def mcm_step(
    width: ti.i32,
    height: ti.i32,
    seed: ti.u32,
    extinction: ti.f32,
    anisotropy: ti.f32,
    max_bounces: ti.i32,
    steps: ti.i32,
    linear: ti.i32,
    environment: vec3,
    unproject: FloatArray1D,
    volume: FloatArray3D,
    transfer_function: Vec4Array1D,
    src_position: Vec4Array2D,
    src_direction: Vec4Array2D,
    src_transmittance: Vec4Array2D,
    src_radiance: Vec4Array2D,
    src_samples: IntArray2D,
    src_bounces: IntArray2D,
    dst_position: Vec4Array2D,
    dst_direction: Vec4Array2D,
    dst_transmittance: Vec4Array2D,
    dst_radiance: Vec4Array2D,
    dst_samples: IntArray2D,
    dst_bounces: IntArray2D,
):
    """Advance every photon by up to ``steps`` collision events."""
    for i, j in ti.ndrange(src_position.shape[0], src_position.shape[1]):
        m = load_unproject(unproject)
        stride = src_position.shape[0]
        p4 = src_position[i, j]
        d4 = src_direction[i, j]
        t4 = src_transmittance[i, j]
        r4 = src_radiance[i, j]
        n_samples = src_samples[i, j]
        n_bounces = src_bounces[i, j]

        if i < width:
            state = pixel_state(seed, i, j, stride)
            pos = vec3(p4[0], p4[1], p4[2])
            heading = vec3(d4[0], d4[1], d4[2])
            trans = vec3(t4[0], t4[1], t4[2])
            rad = vec3(r4[0], r4[1], r4[2])
            hit = 0
            if p4[3] > 0.5:
                hit = 1

            for _ in range(steps):
                finished = 0
                contribution = vec3(0.0)

                # Missed camera rays end at once with no contribution
                if hit == 0:
                    finished = 1
                else:
                    distance = 0.0
                    state, distance = sample_free_path(state, extinction)
                    pos = pos + distance * heading

                    if outside_unit_cube(pos) == 1:
                        if n_bounces > 0:
                            contribution = trans * environment
                        finished = 1
                    else:
                        density = sample_density(volume, pos, linear)
                        color = sample_transfer_function(transfer_function, density)
                        albedo = vec3(color[0], color[1], color[2])
                        alpha = color[3]

                        p_null = 1.0 - alpha
                        p_scattering = 0.0
                        if n_bounces < max_bounces:
                            p_scattering = alpha * ti.max(ti.max(albedo[0], albedo[1]), albedo[2])
                        p_absorption = 1.0 - p_null - p_scattering

                        wheel = 0.0
                        state, wheel = random_float(state)
                        if wheel < p_absorption:
                            finished = 1
                        elif wheel < p_absorption + p_scattering:
                            trans = trans * albedo
                            state, heading = sample_henyey_greenstein(state, anisotropy, heading)
                            n_bounces += 1

                if finished == 1:
                    n_samples += 1
                    rad = rad + (contribution - rad) / ti.cast(n_samples, ti.f32)
                    state, pos, heading, hit = spawn_photon(m, i, j, width, height, state)
                    trans = vec3(1.0)
                    n_bounces = 0

            p4 = vec4(pos[0], pos[1], pos[2], ti.cast(hit, ti.f32))
            d4 = vec4(heading[0], heading[1], heading[2], 0.0)
            t4 = vec4(trans[0], trans[1], trans[2], 0.0)
            r4 = vec4(rad[0], rad[1], rad[2], 1.0)

        dst_position[i, j] = p4
        dst_direction[i, j] = d4
        dst_transmittance[i, j] = t4
        dst_radiance[i, j] = r4
        dst_samples[i, j] = n_samples
        dst_bounces[i, j] = n_bounces
