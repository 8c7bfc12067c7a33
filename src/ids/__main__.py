from src.ids.cli import main

raise SystemExit(main())
