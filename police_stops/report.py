"""
Police Stop Report
Runs the Hartford and Owensboro analyses top to bottom. Any failure stops the run.
"""

import warnings

from police_stops import hartford_analysis, owensboro_analysis
from police_stops.config import ReportContext


def main(ctx=None):
    """Main execution function."""
    warnings.filterwarnings('ignore')
    ctx = (ctx or ReportContext()).ensure_dirs()

    print("=" * 70)
    print("Police Stop Report")
    print("Stanford Open Policing Project: Hartford, CT and Owensboro, KY")
    print("=" * 70)

    hartford = hartford_analysis.run(ctx)
    print()
    owensboro = owensboro_analysis.run(ctx)

    print("\n" + "=" * 70)
    print("Report Complete!")
    print("=" * 70)
    print(f"\nHartford stops: {hartford['stops']:,} ({hartford['arrests']:,} arrests)")
    print(f"First South End arrest of a woman: {hartford['first_south_end_female_arrest']}")
    print(f"Owensboro stops: {owensboro['stops']:,}")
    print(f"Outputs written to {ctx.output_dir}")
    return {'hartford': hartford, 'owensboro': owensboro}


if __name__ == "__main__":
    main()
