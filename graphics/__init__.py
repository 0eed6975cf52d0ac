from .perchplots import PerchPlots, PlotStyle
