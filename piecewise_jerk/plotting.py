import numpy as np

def render_speed_profile(axis_handles, delta_s, x, dx, ddx, x_ref=None, dx_ref=None):
    """
    Plot a solved speed profile.

    Parameters
    ----------
        axis_handles : [matplotlib.axes]
            Three handles, for position, velocity, and acceleration.
        delta_s : float
            Spacing between consecutive knots.
        x, dx, ddx : ndarray (n,)
            The position, velocity, and acceleration at each knot.
        x_ref : ndarray (n,), optional
            Position reference, plotted dashed when provided.
        dx_ref : float, optional
            Velocity reference, plotted dashed when provided.

    Returns
    -------
        plot_handles : [matplotlib.lines.Line2D]
            The handles to the lines that are plotted.
    """
    assert len(axis_handles) == 3, f"[PJ PLOTTING] ASSERTION: Three axis handles are required, got {len(axis_handles)}"
    x = np.asarray(x).ravel()
    dx = np.asarray(dx).ravel()
    ddx = np.asarray(ddx).ravel()

    # The knot axis
    knots = delta_s * np.arange(x.size)

    plot_handles = []
    for axis_handle, values, label in zip(axis_handles, (x, dx, ddx), ("position", "velocity", "acceleration")):
        this_handles = axis_handle.plot(knots, values, color=(0.0,0.0,0.0), linewidth=1.5)
        axis_handle.set_ylabel(label)
        axis_handle.grid(visible=True, which="both", axis="both", linestyle="--")
        for handle in this_handles: plot_handles.append( handle )

    # Add the references
    if (x_ref is not None):
        this_handles = axis_handles[0].plot(knots, np.asarray(x_ref).ravel(), color=(0.3,0.3,0.3), linestyle="--")
        for handle in this_handles: plot_handles.append( handle )
    if (dx_ref is not None):
        this_handles = axis_handles[1].plot(knots, np.full(x.size, dx_ref), color=(0.3,0.3,0.3), linestyle="--")
        for handle in this_handles: plot_handles.append( handle )

    axis_handles[2].set_xlabel("knot")

    return plot_handles
