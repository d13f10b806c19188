from apiwatch.cli.main import main

raise SystemExit(main())
