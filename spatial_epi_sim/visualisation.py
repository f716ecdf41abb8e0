"""
Visualisation tool for the output of the network of locales
"""
# pylint: disable=import-error
import argparse
import math
import sys
from pathlib import Path

import pandas as pd

from matplotlib import pyplot as plt
from matplotlib.colors import ListedColormap

from spatial_epi_sim.run_model import readHeader

COMPARTMENT_COLUMNS = ["susceptible", "exposed", "presymptomatic", "infected", "recovered", "dead"]
DEFAULT_CMAP = ListedColormap(["#56B4E9", "#009E73", "#F0E442", "#0072B2", "#D55E00", "#CC79A7", "#999999", "#E69F00"])


def plot_locales(df, locales=None, states=None, ncol=3, sharey=False, figsize=None, cmap=None):
    """
    Plots a grid of plots, one plot per locale, with one line per compartment. The graphs are all Number of People x
    Time

    :param df: pandas DataFrame with ticks, who and compartment columns, as returned by the simulation
    :type df: pandas DataFrame
    :param locales: creates one plot per locale listed (None means all locales)
    :type locales: list (of locale names).
    :param states: plots one curve per compartment column listed (None means all compartments)
    :type states: list (of column names).
    :param ncol: number of columns (the number of rows will be calculated to fit all graphs)
    :type ncol: int
    :param sharey: set to true if all plots should have the same y-axis
    :type sharey: bool
    :param figsize: select the size of each individual plot
    :type figsize:
    :param cmap: color map to use
    :type cmap:
    :return: returns a matplotlib figure
    :rtype: matplotlib figure
    """
    if "ticks" not in df.columns or "who" not in df.columns:
        raise ValueError("df must have the columns ticks and who")
    if locales is None:
        locales = df.who.unique().tolist()
    if states is None:
        states = [column for column in COMPARTMENT_COLUMNS if column in df.columns]
    if cmap is None:
        cmap = DEFAULT_CMAP

    if not locales:
        raise ValueError("locales cannot be an empty list")
    if not states:
        raise ValueError("states cannot be an empty list")
    missing = set(states) - set(df.columns)
    if missing:
        raise ValueError(f"Unknown states: {sorted(missing)}")

    nrow = math.ceil(len(locales) / ncol)
    if figsize is None:
        figsize = (20, nrow * 5)

    fig, axes = plt.subplots(nrow, ncol, squeeze=False, constrained_layout=True, sharey=sharey, figsize=figsize)

    ax = None
    for count, locale in enumerate(locales):
        ax = axes[count // ncol, count % ncol]
        indexed = df[df.who == locale].set_index("ticks")[states]
        indexed.plot(ax=ax, legend=False, title=str(locale), cmap=cmap)
        ax.set_ylabel("Number of People")
        ax.set_xlabel("Time")

    assert ax is not None, "ax was never assigned"
    handles, labels = ax.get_legend_handles_labels()
    fig.legend(handles, labels, loc="upper right")

    return fig


def plot_alert_levels(df, figsize=(10, 5), cmap=None):
    """
    Plots the population living under each alert level over time, as a stacked area chart

    :param df: pandas DataFrame with ticks, pop.0 and alert.level columns, as returned by the simulation
    :param figsize: size of the figure
    :param cmap: color map to use
    :return: returns a matplotlib figure
    """
    if cmap is None:
        cmap = DEFAULT_CMAP
    totals = df.groupby(["ticks", "alert.level"])["pop.0"].sum().unstack(fill_value=0)
    totals = totals.reindex(columns=range(5), fill_value=0)

    fig, ax = plt.subplots(constrained_layout=True, figsize=figsize)
    totals.plot.area(ax=ax, cmap=cmap, linewidth=0)
    ax.set_ylabel("Population")
    ax.set_xlabel("Time")
    ax.legend(title="Alert level", loc="upper right")
    return fig


def read_output(path):
    """
    Reads the per tick output of a run, given either its CSV or its header file

    :param path: path to a CSV or to a .header file
    :return: pandas DataFrame with the per tick output
    """
    path = Path(path)
    if path.suffix == ".header":
        path = path.parent / readHeader(path)["log.file.name"]
    return pd.read_csv(path, dtype={"who": str})


def build_args(argv):
    parser = argparse.ArgumentParser(
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        description="Reads the CSV output of a run and plots it",
    )

    parser.add_argument(
        "output",
        type=Path,
        help="CSV or .header file written by spatial_epi_sim.run_model",
    )
    parser.add_argument(
        "--locales",
        default=None,
        metavar="locale,[locale,...]",
        help="Comma-separated list of locales to plot. All locales will be plotted if not provided."
    )
    parser.add_argument(
        "--states",
        default=None,
        metavar="state,[state,...]",
        help="Comma-separated list of compartment columns to plot. All compartments will be plotted if not provided."
    )
    parser.add_argument("--alert-levels", action="store_true", help="Plot the population in each alert level instead")
    parser.add_argument("-s", "--save", type=Path, default=None, help="Save the figure here instead of showing it")

    return parser.parse_args(argv)


def main(argv):
    args = build_args(argv)
    df = read_output(args.output)

    if args.alert_levels:
        fig = plot_alert_levels(df)
    else:
        fig = plot_locales(
            df,
            locales=args.locales.split(",") if args.locales else None,
            states=args.states.split(",") if args.states else None,
        )
    if args.save is not None:
        fig.savefig(args.save)
    else:
        plt.show()


if __name__ == "__main__":
    main(sys.argv[1:])
