"""Random numbers and direction sampling for the Taichi kernels.

Randomness is explicit: every pixel derives its own 32-bit PCG state from
the per-pass seed and its index, and each draw returns the advanced state.
Two passes with the same seed therefore produce identical results, and a
fresh seed per pass keeps the estimator unbiased across iterations.
"""

import taichi as ti
import taichi.math as tm

vec3 = tm.vec3


@ti.func
def pcg_hash(value: ti.u32) -> ti.u32:
    """PCG-RXS-M-XS permutation of a 32-bit value."""
    state = value * ti.u32(747796405) + ti.u32(2891336453)
    word = ((state >> ((state >> ti.u32(28)) + ti.u32(4))) ^ state) * ti.u32(277803737)
    return (word >> ti.u32(22)) ^ word


@ti.func
def pixel_state(seed: ti.u32, i: ti.i32, j: ti.i32, stride: ti.i32) -> ti.u32:
    """Initial random state for pixel (i, j)."""
    index = ti.cast(j * stride + i, ti.u32)
    return pcg_hash(seed ^ pcg_hash(index))


@ti.func
def random_float(state: ti.u32):
    """Draw a float in [0, 1).

    Returns:
        A tuple (new_state, value).
    """
    new_state = pcg_hash(state)
    value = ti.cast(new_state >> ti.u32(8), ti.f32) * (1.0 / 16777216.0)
    return new_state, value


@ti.func
def sample_free_path(state: ti.u32, extinction: ti.f32):
    """Exponentially distributed distance to the next collision.

    Returns:
        A tuple (new_state, distance).
    """
    rng, u = random_float(state)
    return rng, -tm.log(1.0 - u) / extinction


@ti.func
def build_onb(direction: vec3):
    """Orthonormal basis with ``direction`` as the z axis.

    Returns:
        A tuple (tangent, bitangent, direction).
    """
    a = vec3(1.0, 0.0, 0.0)
    if ti.abs(direction.x) > 0.9:
        a = vec3(0.0, 1.0, 0.0)
    tangent = tm.normalize(tm.cross(a, direction))
    bitangent = tm.cross(direction, tangent)
    return tangent, bitangent, direction


@ti.func
def sample_henyey_greenstein(state: ti.u32, anisotropy: ti.f32, direction: vec3):
    """Sample a new direction from the Henyey-Greenstein phase function.

    Args:
        state: Random state.
        anisotropy: g in [-1, 1]; 0 is isotropic, positive favours
            forward scattering.
        direction: Current unit direction of travel.

    Returns:
        A tuple (new_state, new_direction).
    """
    rng, u1 = random_float(state)
    rng, u2 = random_float(rng)

    g = ti.min(ti.max(anisotropy, -0.999), 0.999)
    cos_theta = 1.0 - 2.0 * u1
    if ti.abs(g) > 1e-3:
        s = (1.0 - g * g) / (1.0 - g + 2.0 * g * u1)
        cos_theta = (1.0 + g * g - s * s) / (2.0 * g)
    cos_theta = ti.min(ti.max(cos_theta, -1.0), 1.0)

    sin_theta = ti.sqrt(ti.max(0.0, 1.0 - cos_theta * cos_theta))
    phi = 2.0 * tm.pi * u2

    tangent, bitangent, normal = build_onb(direction)
    local = vec3(ti.cos(phi) * sin_theta, ti.sin(phi) * sin_theta, cos_theta)
    world = local.x * tangent + local.y * bitangent + local.z * normal
    return rng, tm.normalize(world)
