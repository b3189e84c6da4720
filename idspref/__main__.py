import sys

from idspref.run_overall_pipeline import main

sys.exit(main())
